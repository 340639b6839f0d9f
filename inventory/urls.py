from django.urls import path
from . import views

app_name = "inventory"

urlpatterns = [
    path("settings/", views.InventorySettingsView.as_view(), name="settings"),

    path("stock-units/", views.StockUnitListView.as_view(), name="stock-unit-list"),
    path("stock-units/<int:stock_unit_id>/", views.StockUnitDetailView.as_view(), name="stock-unit-detail"),
    path("stock-units/<int:stock_unit_id>/movements/", views.StockUnitMovementsView.as_view(), name="stock-unit-movements"),

    path("documents/", views.DocumentListView.as_view(), name="document-list"),
    path("documents/<int:document_id>/", views.DocumentDetailView.as_view(), name="document-detail"),
    path("documents/<int:document_id>/validate/", views.DocumentValidateView.as_view(), name="document-validate"),
    path("documents/<int:document_id>/transition/", views.DocumentTransitionView.as_view(), name="document-transition"),
    path("documents/<int:document_id>/reverse/", views.DocumentReverseView.as_view(), name="document-reverse"),

    path("quality-checks/", views.QualityCheckListView.as_view(), name="quality-check-list"),
    path("quality-checks/metrics/", views.QualityMetricsView.as_view(), name="quality-metrics"),
    path("quality-checks/<int:check_id>/", views.QualityCheckDetailView.as_view(), name="quality-check-detail"),
    path("quality-checks/<int:check_id>/rework/", views.QualityCheckReworkView.as_view(), name="quality-check-rework"),

    path("batch-operations/", views.BatchOperationListView.as_view(), name="batch-operation-list"),
    path("batch-operations/<int:operation_id>/", views.BatchOperationDetailView.as_view(), name="batch-operation-detail"),
]
