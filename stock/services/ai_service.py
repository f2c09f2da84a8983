"""
AI Service - Model-assisted purchase order suggestions and stock predictions.

Both flows send a prompt built from live stock data and validate the answer
strictly. Nothing the model returns is persisted.
"""
import json
import logging
from typing import Dict, Any, List

from stock.models import Item, StockLocation
from stock.serializers import LpoSuggestionSerializer, StockPredictionSerializer
from .base_service import success_response, AIResponseError
from .formatting import format_item_name
from .genai_client import GenerativeAIClient
from .item_service import ItemService
from .procurement import find_low_stock_items, on_hand_by_item
from .stock_service import StockService, catalog_entries, stock_entries, validate_location, on_hand
from .vendor_service import VendorService


logger = logging.getLogger(__name__)


def _validated(serializer_class, payload: Any) -> Dict[str, Any]:
    serializer = serializer_class(data=payload)
    if not serializer.is_valid():
        logger.warning("AI response failed validation: %s", serializer.errors)
        raise AIResponseError("AI response did not match the expected format", {"errors": serializer.errors})
    return serializer.validated_data


LPO_PROMPT = """You are a procurement assistant for a clinic pharmacy.
The following items are below their reorder level at the {location}.

Items (JSON):
{items}

Vendors and the item ids each one supplies (JSON):
{vendors}

For each item, suggest an order quantity that covers 30 to 60 days of the
usage shown in its daily usage history, and choose a vendor ONLY from the
vendors that supply that item. Explain each choice briefly.

Respond with JSON only, in exactly this shape:
{{"lpo_id": "<short reference>", "summary": "<one paragraph>",
  "items": [{{"item_id": <int>, "item_name": "<name>", "quantity": <int>,
             "vendor_id": <int>, "vendor_name": "<name>", "reasoning": "<text>"}}]}}
"""

PREDICTION_PROMPT = """You are a stock planning assistant for a clinic pharmacy.

Item: {item_name}
Location: {location}
Current quantity: {quantity}
Reorder level: {reorder_level}
Daily units dispensed, oldest first (JSON):
{usage}

Predict the stock level one week from today and whether the item should be
reordered now.

Respond with JSON only, in exactly this shape:
{{"should_reorder": <true|false>, "predicted_stock_level": <number>, "reason": "<text>"}}
"""


class LpoSuggestionService:

    @classmethod
    def build_context(cls, location: str) -> Dict[str, List[Dict[str, Any]]]:
        catalog = catalog_entries(Item.objects.filter(is_active=True))
        stocks = stock_entries(location)
        low = find_low_stock_items(catalog, stocks, location)
        quantities = on_hand_by_item(stocks, location)
        low_ids = {entry.id for entry in low}

        items = [
            {
                "item_id": entry.id,
                "item_name": entry.name,
                "current_quantity": quantities.get(entry.id, 0),
                "reorder_level": entry.reorder_level_for(location),
                "usage_history": [day["quantity"] for day in StockService.usage_history(entry.id)],
            }
            for entry in low
        ]
        vendors = [
            {"vendor_id": vendor.id, "vendor_name": vendor.name, "supplies": sorted(vendor.supplies & low_ids)}
            for vendor in VendorService.catalog()
            if vendor.supplies & low_ids
        ]
        return {"items": items, "vendors": vendors}

    @classmethod
    def check_suggestion(cls, suggestion: Dict[str, Any]) -> None:
        """Reject items or vendors the catalog does not know, and impossible vendor picks."""
        vendors = {vendor.id: vendor for vendor in VendorService.catalog()}
        item_ids = {line["item_id"] for line in suggestion["items"]}
        known_items = set(Item.objects.filter(id__in=item_ids).values_list("id", flat=True))

        for line in suggestion["items"]:
            if line["item_id"] not in known_items:
                raise AIResponseError(f"AI suggested an unknown item: {line['item_id']}", {"item_id": line["item_id"]})
            vendor = vendors.get(line["vendor_id"])
            if vendor is None:
                raise AIResponseError(f"AI suggested an unknown vendor: {line['vendor_id']}",
                                      {"vendor_id": line["vendor_id"]})
            if line["item_id"] not in vendor.supplies:
                raise AIResponseError(
                    f"AI chose {vendor.name} for item {line['item_id']}, which it does not supply",
                    {"item_id": line["item_id"], "vendor_id": vendor.id},
                )

    @classmethod
    def generate(cls, location: str = StockLocation.BULK_STORE, client: GenerativeAIClient = None) -> Dict[str, Any]:
        location = validate_location(location)
        context = cls.build_context(location)

        if not context["items"]:
            return success_response({
                "location": location,
                "suggestion": {"lpo_id": "", "summary": "No items are below their reorder level.", "items": []},
            }, "Nothing to reorder")

        prompt = LPO_PROMPT.format(
            location=StockLocation(location).label,
            items=json.dumps(context["items"]),
            vendors=json.dumps(context["vendors"]),
        )
        payload = (client or GenerativeAIClient()).generate_json(prompt)
        suggestion = _validated(LpoSuggestionSerializer, payload)
        cls.check_suggestion(suggestion)

        logger.info("AI suggested %d LPO lines for %s", len(suggestion["items"]), location)

        return success_response({
            "location": location,
            "suggestion": {
                "lpo_id": suggestion["lpo_id"],
                "summary": suggestion["summary"],
                "items": [dict(line) for line in suggestion["items"]],
            },
        }, "Suggestion generated")


class StockPredictionService:

    @classmethod
    def predict(cls, item_id: int, location: str = StockLocation.DISPENSARY,
                client: GenerativeAIClient = None) -> Dict[str, Any]:
        item = ItemService.get_or_404(item_id)
        location = validate_location(location)

        quantity = on_hand(item.id, location)
        reorder_level = item.reorder_level_for(location)
        usage = [day["quantity"] for day in StockService.usage_history(item.id)]

        prompt = PREDICTION_PROMPT.format(
            item_name=format_item_name(item),
            location=StockLocation(location).label,
            quantity=quantity,
            reorder_level=reorder_level,
            usage=json.dumps(usage),
        )
        payload = (client or GenerativeAIClient()).generate_json(prompt)
        prediction = _validated(StockPredictionSerializer, payload)

        return success_response({
            "item_id": item.id,
            "item_name": format_item_name(item),
            "location": location,
            "current_quantity": quantity,
            "reorder_level": reorder_level,
            "prediction": dict(prediction),
        }, "Prediction generated")
