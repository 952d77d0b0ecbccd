"""
Load menu items, promotions and an optional tax profile into the configured store.

    python -m scripts.seed --path seed.json

The file holds ``{"menuItems": {id: {...}}, "promotions": {id: {...}},
"taxProfile": {...}}``. Promotion codes are normalized before writing.
"""
import argparse
import json
import logging
from typing import Any, Dict

from comanda.services.promotions import parse_promotion
from comanda.store import DocumentStore, get_store

logger = logging.getLogger("comanda.seed")


def load_seed(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def seed(store: DocumentStore, data: Dict[str, Any]) -> Dict[str, int]:
    counts = {"menuItems": 0, "promotions": 0, "taxProfiles": 0}
    for item_id, item in (data.get("menuItems") or {}).items():
        store.set(f"menuItems/{item_id}", item, merge=True)
        counts["menuItems"] += 1
    for promo_id, promo in (data.get("promotions") or {}).items():
        # validate, and store the normalized code
        parsed = parse_promotion(promo, promo_id)
        store.set(f"promotions/{promo_id}", {**promo, "code": parsed.code}, merge=True)
        counts["promotions"] += 1
    if data.get("taxProfile"):
        store.set("taxProfiles/active", data["taxProfile"], merge=True)
        counts["taxProfiles"] += 1
    return counts


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    ap = argparse.ArgumentParser()
    ap.add_argument("--path", required=True, help="JSON file with menuItems / promotions / taxProfile")
    args = ap.parse_args()
    counts = seed(get_store(), load_seed(args.path))
    logger.info("seeded %s", ", ".join(f"{n} {k}" for k, n in counts.items()))
