from rest_framework import serializers

from stock.models import Item


class LpoSuggestionLineSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    item_name = serializers.CharField(allow_blank=True, required=False, default="")
    quantity = serializers.IntegerField(min_value=1)
    vendor_id = serializers.IntegerField()
    vendor_name = serializers.CharField(allow_blank=True, required=False, default="")
    reasoning = serializers.CharField(allow_blank=True, required=False, default="")


class LpoSuggestionSerializer(serializers.Serializer):
    lpo_id = serializers.CharField(allow_blank=True, required=False, default="")
    summary = serializers.CharField(allow_blank=True, required=False, default="")
    items = LpoSuggestionLineSerializer(many=True)


class StockPredictionSerializer(serializers.Serializer):
    should_reorder = serializers.BooleanField()
    predicted_stock_level = serializers.FloatField(min_value=0)
    reason = serializers.CharField(allow_blank=True)


class ChoiceLabelField(serializers.ChoiceField):
    """Accepts the stored value or its human label, case-insensitively."""

    def to_internal_value(self, data):
        text = str(data).strip()
        for value, label in self.choices.items():
            if text.upper() == value or text.lower() == str(label).lower():
                return value
        self.fail("invalid_choice", input=data)


class ItemImportRowSerializer(serializers.Serializer):
    item_code = serializers.CharField(max_length=30, required=False, allow_blank=True, default="")
    generic_name = serializers.CharField(max_length=150)
    brand_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    formulation = ChoiceLabelField(choices=Item.Formulation.choices)
    category = ChoiceLabelField(choices=Item.Category.choices)
    unit_of_measure = serializers.CharField(max_length=30)

    strength_value = serializers.DecimalField(max_digits=12, decimal_places=4, min_value=0,
                                              required=False, allow_null=True, default=None)
    strength_unit = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")
    concentration_value = serializers.DecimalField(max_digits=12, decimal_places=4, min_value=0,
                                                   required=False, allow_null=True, default=None)
    concentration_unit = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")
    package_size_value = serializers.DecimalField(max_digits=12, decimal_places=4, min_value=0,
                                                  required=False, allow_null=True, default=None)
    package_size_unit = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")

    dispensary_reorder_level = serializers.IntegerField(min_value=0, required=False, default=0)
    bulk_store_reorder_level = serializers.IntegerField(min_value=0, required=False, default=0)
    unit_cost = serializers.DecimalField(max_digits=15, decimal_places=4, min_value=0, required=False, default=0)
    selling_price = serializers.DecimalField(max_digits=15, decimal_places=4, min_value=0, required=False, default=0)

    def to_internal_value(self, data):
        # CSV cells are always strings; an empty cell means "not provided"
        cleaned = {key: value for key, value in data.items() if value not in (None, "")}
        return super().to_internal_value(cleaned)
