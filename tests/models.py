"""Model classes shared by the test modules."""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Address:
    street: str = ""
    city: str = ""


@dataclass
class OrderDetail:
    product: str = ""
    quantity: int = 1


@dataclass
class Order:
    customer: str = ""
    address: Optional[Address] = None
    details: List[OrderDetail] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)


@dataclass
class User:
    name: str = ""
    age: Optional[int] = None


@dataclass(frozen=True)
class Money:
    amount: int = 0
    currency: str = "EUR"


@dataclass(eq=False)
class Node:
    name: str = ""
    next: Optional["Node"] = None


class Account:
    """Plain class with a validating property."""

    def __init__(self, owner: str, balance: int = 0):
        self.owner = owner
        self._balance = balance

    @property
    def balance(self) -> int:
        return self._balance

    @balance.setter
    def balance(self, value: int) -> None:
        if value < 0:
            raise ValueError("balance cannot be negative")
        self._balance = value

    def deposit(self, amount: int) -> None:
        self.balance = self.balance + amount


class Point:
    __slots__ = ('x', 'y')

    def __init__(self, x: int, y: int):
        self.x = x
        self.y = y
