"""Helpers shared by the processors."""


def validate_email(email: str) -> bool:
    local, _, domain = email.partition("@")
    return bool(local) and "." in domain


def format_name(first: str, last: str) -> str:
    return f"{first.capitalize()} {last.capitalize()}"


def calculate_total(items, tax_rate: float = 0.1) -> float:
    subtotal = sum(items)
    return subtotal * (1 + tax_rate)
