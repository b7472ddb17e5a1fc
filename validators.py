"""
Input validation for the Stock Order Bot
Validates quantities, product choices and correction kinds
"""
import math
import unicodedata
import logging
from typing import Any, Sequence, Tuple

from config import Config

logger = logging.getLogger(__name__)


def normalize_text(text: str) -> str:
    """Fold full-width characters so '５' and '5' compare equal"""
    return unicodedata.normalize("NFKC", text or "").strip()


def validate_quantity(quantity_text: str) -> Tuple[bool, Any]:
    """
    Validate a remaining or order quantity

    Args:
        quantity_text: User input for the quantity

    Returns:
        Tuple of (is_valid: bool, result: int/float or error_message: str)
    """
    text = normalize_text(quantity_text).replace(",", "")

    if not text:
        return False, "数字のみで送信してください。"

    try:
        value = float(text)
    except ValueError:
        return False, "数字のみで送信してください。"

    if math.isnan(value) or math.isinf(value):
        return False, "数字のみで送信してください。"

    if value < 0:
        return False, "0以上の数字で送信してください。"

    if value.is_integer():
        return True, int(value)
    return True, value


def validate_product_choice(text: str, catalog: Sequence[str] = None) -> Tuple[bool, str]:
    """
    Validate a product picked from the catalog menu

    Args:
        text: User input naming a product
        catalog: Allowed products (defaults to the configured catalog)

    Returns:
        Tuple of (is_valid: bool, result: product or error_message: str)
    """
    if catalog is None:
        catalog = Config.PRODUCTS
    choice = normalize_text(text)

    if choice in catalog:
        return True, choice

    names = "」「".join(catalog)
    return False, f"「{names}」のいずれかを送信してください。"


def validate_correction_kind(text: str) -> Tuple[bool, str]:
    """
    Validate the kind of correction requested

    Returns:
        Tuple of (is_valid: bool, result: keyword or error_message: str)
    """
    choice = normalize_text(text)
    kinds = (Config.KEYWORD_KIND_STOCK, Config.KEYWORD_KIND_ORDER)

    if choice in kinds:
        return True, choice

    return False, f"「{kinds[0]}」または「{kinds[1]}」と送信してください。"
