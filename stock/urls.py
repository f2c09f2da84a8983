from django.urls import path
from . import views, ai_views

app_name = "stock"

urlpatterns = [
    path("dashboard/", views.DashboardView.as_view(), name="dashboard"),

    path("items/", views.ItemListView.as_view(), name="item-list"),
    path("items/import/preview/", views.ItemImportPreviewView.as_view(), name="item-import-preview"),
    path("items/import/", views.ItemImportView.as_view(), name="item-import"),
    path("items/<int:item_id>/", views.ItemDetailView.as_view(), name="item-detail"),
    path("items/<int:item_id>/price-history/", views.ItemPriceHistoryView.as_view(), name="item-price-history"),
    path("items/<int:item_id>/stock/", views.ItemStockView.as_view(), name="item-stock"),
    path("items/<int:item_id>/movements/", views.ItemMovementsView.as_view(), name="item-movements"),
    path("items/<int:item_id>/usage/", views.ItemUsageView.as_view(), name="item-usage"),

    path("stocks/", views.StockListView.as_view(), name="stock-list"),
    path("stocks/receive/", views.StockReceiveView.as_view(), name="stock-receive"),
    path("stocks/<int:stock_id>/adjust/", views.StockAdjustView.as_view(), name="stock-adjust"),
    path("low-stock/", views.LowStockView.as_view(), name="low-stock"),
    path("expiring/", views.ExpiringStockView.as_view(), name="expiring"),
    path("expired/", views.ExpiredStockView.as_view(), name="expired"),

    path("vendors/", views.VendorListView.as_view(), name="vendor-list"),
    path("vendors/<int:vendor_id>/", views.VendorDetailView.as_view(), name="vendor-detail"),
    path("vendors/<int:vendor_id>/items/", views.VendorItemsView.as_view(), name="vendor-items"),

    path("procurement/", views.ProcurementListView.as_view(), name="procurement-list"),
    path("procurement/<int:session_id>/", views.ProcurementDetailView.as_view(), name="procurement-detail"),
    path("procurement/<int:session_id>/candidates/", views.ProcurementCandidatesView.as_view(),
         name="procurement-candidates"),
    path("procurement/<int:session_id>/items/", views.ProcurementItemsView.as_view(), name="procurement-items"),
    path("procurement/<int:session_id>/items/<int:item_id>/", views.ProcurementItemDetailView.as_view(),
         name="procurement-item-detail"),
    path("procurement/<int:session_id>/quotes/", views.ProcurementQuotesView.as_view(), name="procurement-quotes"),
    path("procurement/<int:session_id>/quantities/", views.ProcurementQuantitiesView.as_view(),
         name="procurement-quantities"),
    path("procurement/<int:session_id>/preview/", views.ProcurementPreviewView.as_view(), name="procurement-preview"),
    path("procurement/<int:session_id>/finalize/", views.ProcurementFinalizeView.as_view(),
         name="procurement-finalize"),

    path("lpos/", views.PurchaseOrderListView.as_view(), name="lpo-list"),
    path("lpos/stats/", views.PurchaseOrderStatsView.as_view(), name="lpo-stats"),
    path("lpos/<int:lpo_id>/", views.PurchaseOrderDetailView.as_view(), name="lpo-detail"),
    path("lpos/<int:lpo_id>/<str:action>/", views.PurchaseOrderActionView.as_view(), name="lpo-action"),

    path("internal-orders/", views.InternalOrderListView.as_view(), name="internal-order-list"),
    path("internal-orders/<int:order_id>/", views.InternalOrderDetailView.as_view(), name="internal-order-detail"),
    path("internal-orders/<int:order_id>/<str:action>/", views.InternalOrderActionView.as_view(),
         name="internal-order-action"),

    path("stock-takes/", views.StockTakeListView.as_view(), name="stock-take-list"),
    path("stock-takes/<int:session_id>/", views.StockTakeDetailView.as_view(), name="stock-take-detail"),
    path("stock-takes/<int:session_id>/counts/", views.StockTakeCountsView.as_view(), name="stock-take-counts"),
    path("stock-takes/<int:session_id>/finalize/", views.StockTakeFinalizeView.as_view(),
         name="stock-take-finalize"),

    path("ai/lpo-suggestions/", ai_views.LpoSuggestionView.as_view(), name="ai-lpo-suggestions"),
    path("ai/predictions/<int:item_id>/", ai_views.StockPredictionView.as_view(), name="ai-prediction"),
]
