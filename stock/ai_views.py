from .services import LpoSuggestionService, StockPredictionService
from .views import BaseStockView


class LpoSuggestionView(BaseStockView):
    """
    POST /api/stock/ai/lpo-suggestions/

    Request:
    {
        "location": "BULK_STORE"   // Optional, defaults to the bulk store
    }

    Response:
    {
        "success": true,
        "location": "BULK_STORE",
        "suggestion": {
            "lpo_id": "AI-LPO-1",
            "summary": "...",
            "items": [{"item_id": 1, "quantity": 600, "vendor_id": 2, ...}]
        }
    }

    The suggestion is advisory; nothing is saved.
    """

    def post(self, request):
        data = self.get_json_body(request)
        result = LpoSuggestionService.generate(location=data.get("location", "BULK_STORE"))
        return self.success(result)


class StockPredictionView(BaseStockView):
    """
    GET /api/stock/ai/predictions/<item_id>/?location=DISPENSARY

    Response:
    {
        "success": true,
        "item_id": 1,
        "prediction": {"should_reorder": true, "predicted_stock_level": 40, "reason": "..."}
    }
    """

    def get(self, request, item_id):
        result = StockPredictionService.predict(item_id, location=request.GET.get("location", "DISPENSARY"))
        return self.success(result)
