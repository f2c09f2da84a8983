from decimal import Decimal


NAMELESS_FORMULATIONS = {"MEDICAL_SUPPLY", "CONSUMABLE"}


def format_quantity(value) -> str:
    """Render a Decimal without trailing zeros: Decimal('500.0000') -> '500'."""
    if value is None:
        return ""
    value = Decimal(str(value))
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return format(value.normalize(), "f")


def format_item_name(item) -> str:
    """
    Human-readable item name used on lists, LPOs and bills.

    Paracetamol (Panadol) 500mg Tablet (100tabs)
    """
    if item is None:
        return ""

    parts = [item.generic_name]

    if item.brand_name:
        parts.append(f"({item.brand_name})")
    if item.strength_value is not None and item.strength_unit:
        parts.append(f"{format_quantity(item.strength_value)}{item.strength_unit}")
    if item.concentration_value is not None and item.concentration_unit:
        parts.append(f"{format_quantity(item.concentration_value)}{item.concentration_unit}")
    if item.formulation and item.formulation not in NAMELESS_FORMULATIONS:
        parts.append(item.get_formulation_display())
    if item.package_size_value is not None and item.package_size_unit:
        parts.append(f"({format_quantity(item.package_size_value)}{item.package_size_unit})")

    return " ".join(parts)
