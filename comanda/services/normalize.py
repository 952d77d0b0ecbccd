# comanda/services/normalize.py
"""
Boundary normalization: duck-typed cart/order payloads -> canonical OrderLine.

Clients over the years sent the same money under many names (``priceDelta``,
``priceExtraCents``, ``price`` ...) and add-ons either as bare strings or as
``{name, price}`` objects. All of that is resolved here so the pricer only
ever sees integers in minor units.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import InvalidPayload
from ..money import as_minor, to_minor
from ..schemas.orders import Addon, OptionDelta, OrderLine
from .pricing import price_line

# add-ons arrive either as a bare label or as an object carrying a price
AddonPayload = Union[str, Mapping[str, Any]]

_Fields = Sequence[Tuple[str, Callable[[Any], Optional[int]]]]

# first match wins, in this order
_DELTA_FIELDS: _Fields = (
    ("priceDelta", to_minor),
    ("priceExtra", to_minor),
    ("priceDeltaCents", as_minor),
    ("priceExtraCents", as_minor),
    ("price", to_minor),
    ("priceCents", as_minor),
)
_ADDON_FIELDS: _Fields = (
    ("amount", as_minor),
    ("price", to_minor),
    ("priceCents", as_minor),
    ("extraPriceCents", as_minor),
)
_BASE_FIELDS: _Fields = (
    ("basePriceCents", as_minor),
    ("unitPriceCents", as_minor),
    ("priceCents", as_minor),
    ("basePrice", to_minor),
    ("unitPrice", to_minor),
    ("price", to_minor),
)
_TOTAL_FIELDS: _Fields = (
    ("lineTotalCents", as_minor),
    ("totalCents", as_minor),
    ("totalPriceCents", as_minor),
    ("lineTotal", to_minor),
    ("totalPrice", to_minor),
)

_ORDER_TYPE_ALIASES: Dict[str, Tuple[str, ...]] = {
    "dine_in": ("dine_in", "dine-in", "dinein", "mesa", "restaurant", "onsite"),
    "delivery": ("delivery", "envio", "entrega"),
    "pickup": ("pickup", "takeaway", "para_llevar", "para-llevar"),
}


def normalize_order_type(raw: Any) -> Optional[str]:
    s = str(raw or "").strip().lower()
    for canonical, aliases in _ORDER_TYPE_ALIASES.items():
        if s in aliases:
            return canonical
    return None


def _first_amount(raw: Mapping[str, Any], fields: _Fields) -> Optional[int]:
    for key, convert in fields:
        value = convert(raw.get(key))
        if value is not None:
            return value
    return None


def _first_str(raw: Mapping[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = raw.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def parse_addon(raw: AddonPayload) -> Addon:
    if isinstance(raw, str):
        return Addon(name=raw.strip(), amount=0)
    if isinstance(raw, Mapping):
        return Addon(
            name=str(raw.get("name") or ""),
            amount=_first_amount(raw, _ADDON_FIELDS) or 0,
        )
    raise InvalidPayload(f"unsupported add-on payload: {raw!r}")


def parse_options(raw: Mapping[str, Any]) -> List[OptionDelta]:
    out: List[OptionDelta] = []
    # admin editor: optionGroups[].items[]
    for group in raw.get("optionGroups") or []:
        group_name = group.get("groupName") or group.get("groupId")
        for item in group.get("items") or []:
            out.append(OptionDelta(
                name=str(item.get("name") or item.get("id") or ""),
                group=group_name,
                delta=_first_amount(item, _DELTA_FIELDS) or 0,
            ))
    # checkout: options[].selected[], or already-canonical {name, group, delta}
    for opt in raw.get("options") or []:
        if "selected" in opt:
            for sel in opt.get("selected") or []:
                out.append(OptionDelta(
                    name=str(sel.get("name") or ""),
                    group=opt.get("groupName"),
                    delta=_first_amount(sel, _DELTA_FIELDS) or 0,
                ))
        elif "delta" in opt:
            out.append(OptionDelta(
                name=str(opt.get("name") or ""),
                group=opt.get("group"),
                delta=as_minor(opt.get("delta")) or 0,
            ))
        else:
            out.append(OptionDelta(
                name=str(opt.get("name") or ""),
                group=opt.get("groupName"),
                delta=_first_amount(opt, _DELTA_FIELDS) or 0,
            ))
    return out


def _quantity(raw: Mapping[str, Any]) -> int:
    value = raw.get("quantity", raw.get("qty", 1))
    if isinstance(value, bool):
        raise InvalidPayload(f"invalid quantity {value!r}")
    try:
        qty = int(value)
    except (TypeError, ValueError):
        raise InvalidPayload(f"invalid quantity {value!r}")
    if qty != value and str(qty) != str(value).strip():
        raise InvalidPayload(f"quantity must be a whole number, got {value!r}")
    if qty < 1:
        raise InvalidPayload(f"quantity must be >= 1, got {qty}")
    return qty


def normalize_line(raw: Mapping[str, Any], index: int = 0) -> OrderLine:
    if not isinstance(raw, Mapping):
        raise InvalidPayload(f"line {index} is not an object")

    menu_item_id = _first_str(raw, "menuItemId", "itemId", "id")
    if not menu_item_id:
        raise InvalidPayload(f"line {index} has no menu item id", line=index)

    base_price = _first_amount(raw, _BASE_FIELDS) or 0
    if base_price < 0:
        raise InvalidPayload(f"line {index} has a negative base price", line=index)

    override = _first_amount(raw, _TOTAL_FIELDS)

    line = OrderLine(
        line_id=_first_str(raw, "lineId") or str(index),
        menu_item_id=menu_item_id,
        name=_first_str(raw, "menuItemName", "name", "title") or "",
        quantity=_quantity(raw),
        base_price=base_price,
        options=parse_options(raw),
        addons=[parse_addon(a) for a in raw.get("addons") or []],
        category_id=_first_str(raw, "categoryId"),
        subcategory_id=_first_str(raw, "subcategoryId"),
        # legacy editors persisted 0 for "not computed"
        total_override=override if override and override > 0 else None,
    )
    line.subtotal = price_line(line)
    if line.subtotal < 0:
        raise InvalidPayload(f"line {index} prices below zero", line=index, subtotal=line.subtotal)
    return line


def normalize_lines(raws: Sequence[Mapping[str, Any]], start: int = 0) -> List[OrderLine]:
    if not raws:
        raise InvalidPayload("no order lines provided")
    return [normalize_line(raw, start + i) for i, raw in enumerate(raws)]
