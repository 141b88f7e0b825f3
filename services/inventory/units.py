"""
Unit names and quantity conversion.

Spoken units are normalized to a canonical plural form ("lb" -> "pounds").
Volume converts through liters, weight through grams; count units ("boxes",
"bags") only convert to themselves.
"""

from __future__ import annotations

from typing import Dict

from stockcount.exceptions import UnitConversionError


__all__ = [
    "UNIT_SYNONYMS",
    "KNOWN_UNITS",
    "normalize_unit",
    "is_known_unit",
    "get_unit_type",
    "convert_quantity",
]


UNIT_SYNONYMS: Dict[str, str] = {
    # weight
    "lb": "pounds", "lbs": "pounds", "pound": "pounds",
    "kg": "kilograms", "kilo": "kilograms", "kilos": "kilograms", "kilogram": "kilograms",
    "g": "grams", "gram": "grams",
    # volume
    "oz": "ounces", "ounce": "ounces", "fl oz": "ounces", "fluid ounces": "ounces",
    "gallon": "gallons", "gal": "gallons",
    "liter": "liters", "l": "liters", "litre": "liters", "litres": "liters",
    "ml": "milliliters", "milliliter": "milliliters", "millilitre": "milliliters",
    "cup": "cups", "quart": "quarts", "pint": "pints",
    "tablespoon": "tablespoons", "tbsp": "tablespoons",
    "teaspoon": "teaspoons", "tsp": "teaspoons",
    # count
    "box": "boxes", "bag": "bags", "bottle": "bottles", "case": "cases",
    "carton": "cartons", "piece": "pieces", "pcs": "pieces", "pc": "pieces",
    "unit": "units", "pack": "packs", "package": "packs", "container": "containers",
    "packet": "packets", "jar": "jars", "sleeve": "sleeves", "stack": "stacks",
    "roll": "rolls", "sheet": "sheets", "can": "cans", "tub": "tubs",
}

# Liters per unit
VOLUME_CONVERSIONS: Dict[str, float] = {
    "liters": 1.0,
    "milliliters": 0.001,
    "gallons": 3.78541,
    "ounces": 0.0295735,
    "cups": 0.236588,
    "tablespoons": 0.0147868,
    "teaspoons": 0.00492892,
    "quarts": 0.946353,
    "pints": 0.473176,
}

# Grams per unit
WEIGHT_CONVERSIONS: Dict[str, float] = {
    "grams": 1.0,
    "kilograms": 1000.0,
    "pounds": 453.592,
}

COUNT_UNITS = {
    "pieces", "boxes", "bottles", "bags", "cases", "cartons", "units", "packs",
    "containers", "packets", "jars", "sleeves", "stacks", "rolls", "sheets",
    "cans", "tubs",
}

KNOWN_UNITS = set(VOLUME_CONVERSIONS) | set(WEIGHT_CONVERSIONS) | COUNT_UNITS


def normalize_unit(unit: str) -> str:
    unit = " ".join(unit.strip().lower().rstrip(".,!?").split())
    return UNIT_SYNONYMS.get(unit, unit)


def is_known_unit(unit: str) -> bool:
    return normalize_unit(unit) in KNOWN_UNITS


def get_unit_type(unit: str) -> str:
    """"volume", "weight", "count" or "unknown"."""
    unit = normalize_unit(unit)
    if unit in VOLUME_CONVERSIONS:
        return "volume"
    if unit in WEIGHT_CONVERSIONS:
        return "weight"
    if unit in COUNT_UNITS:
        return "count"
    return "unknown"


def convert_quantity(quantity: float, from_unit: str, to_unit: str) -> float:
    """Convert ``quantity`` between units of the same family.

    Raises:
        UnitConversionError: Unknown unit, different families, or two
            different count units
    """
    source = normalize_unit(from_unit)
    target = normalize_unit(to_unit)
    if source == target:
        return quantity

    source_type = get_unit_type(source)
    target_type = get_unit_type(target)

    if source_type == "unknown" or target_type == "unknown":
        raise UnitConversionError(f"Unknown unit: {from_unit} or {to_unit}", from_unit, to_unit)
    if source_type != target_type:
        raise UnitConversionError(f"Incompatible units: {from_unit} and {to_unit}", from_unit, to_unit)
    if source_type == "count":
        raise UnitConversionError(
            f"Cannot convert between different count units: {from_unit} to {to_unit}",
            from_unit, to_unit,
        )

    table = VOLUME_CONVERSIONS if source_type == "volume" else WEIGHT_CONVERSIONS
    return quantity * table[source] / table[target]
