"""
Realistic person records for bulk insert runs.

Deterministic when given a seeded random.Random, so test runs and demo
runs against the in-memory store are reproducible.
"""

import random

from docstore.models import Item

FIRST_NAMES = [
    "James", "Mary", "Robert", "Patricia", "John", "Jennifer", "Michael", "Linda",
    "David", "Elizabeth", "William", "Barbara", "Richard", "Susan", "Joseph", "Jessica",
    "Thomas", "Sarah", "Charles", "Karen", "Christopher", "Lisa", "Daniel", "Nancy",
]

LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis",
    "Rodriguez", "Martinez", "Hernandez", "Lopez", "Gonzalez", "Wilson", "Anderson",
    "Taylor", "Moore", "Jackson", "Martin", "Lee", "Perez", "Thompson", "White", "Harris",
]

STREET_NAMES = [
    "Main", "Oak", "Maple", "Cedar", "Pine", "Elm", "Washington", "Lake",
    "Hill", "Park", "Forest", "River", "Spring", "Valley", "Sunset", "Highland",
]

STREET_SUFFIXES = ["St", "Ave", "Blvd", "Dr", "Ln", "Rd", "Way", "Ct"]

CITIES = [
    ("Austin", "TX", "78701"), ("Denver", "CO", "80202"), ("Phoenix", "AZ", "85001"),
    ("Seattle", "WA", "98101"), ("Portland", "OR", "97201"), ("Atlanta", "GA", "30301"),
    ("Chicago", "IL", "60601"), ("Miami", "FL", "33101"), ("Dallas", "TX", "75201"),
    ("San Diego", "CA", "92101"), ("Nashville", "TN", "37201"), ("Albany", "NY", "12207"),
    ("Little Rock", "AR", "72201"), ("Columbus", "OH", "43201"), ("Boise", "ID", "83702"),
]

EMAIL_DOMAINS = ["gmail.com", "yahoo.com", "outlook.com", "icloud.com"]


def generate_item(rng: random.Random, serial: int | None = None) -> Item:
    """Generate one person record. ``serial`` is appended to the e-mail local part."""
    first = rng.choice(FIRST_NAMES)
    last = rng.choice(LAST_NAMES)
    city, state, zip_code = rng.choice(CITIES)
    street = f"{rng.randint(100, 9999)} {rng.choice(STREET_NAMES)} {rng.choice(STREET_SUFFIXES)}"

    local = f"{first.lower()}.{last.lower()}"
    if serial is not None:
        local = f"{local}{serial}"
    email = f"{local}@{rng.choice(EMAIL_DOMAINS)}"

    return Item(
        id=email,
        address=f"{street} {city} {state} {zip_code}",
        state=state,
        first_name=first,
        last_name=last,
        email=email,
    )


def generate_items(count: int, rng: random.Random | None = None) -> list[Item]:
    """
    Generate ``count`` items with ids unique within the batch.

    Args:
        count: Number of items (>= 0)
        rng: Random source; pass random.Random(seed) for reproducible output

    Raises:
        ValueError: If count is negative
    """
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")

    rng = rng or random.Random()
    items: list[Item] = []
    seen: set[str] = set()
    serial = 0
    while len(items) < count:
        item = generate_item(rng)
        if item.id in seen:
            serial += 1
            item = generate_item(rng, serial=serial)
            if item.id in seen:
                continue
        seen.add(item.id)
        items.append(item)
    return items
