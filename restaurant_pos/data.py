"""Starter menu seeded into an empty local database."""

from __future__ import annotations

# (category, name, price)
SEED_MENU: list[tuple[str, str, str]] = [
    ("Drinks", "Mint Tea", "8.00"),
    ("Drinks", "Orange Juice", "12.00"),
    ("Drinks", "Espresso", "10.00"),
    ("Drinks", "Mineral Water", "5.00"),
    ("Grills", "Chicken Skewers", "45.00"),
    ("Grills", "Kefta Plate", "50.00"),
    ("Grills", "Mixed Grill", "75.00"),
    ("Sandwiches", "Chicken Shawarma", "25.00"),
    ("Sandwiches", "Tuna Sandwich", "20.00"),
    ("Sandwiches", "Kefta Sandwich", "22.50"),
    ("Sides", "French Fries", "10.00"),
    ("Sides", "Moroccan Salad", "15.00"),
    ("Tagines", "Chicken Tagine", "60.00"),
    ("Tagines", "Lamb Tagine", "80.00"),
    ("Tagines", "Vegetable Tagine", "45.00"),
]
