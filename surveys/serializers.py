# surveys/serializers.py
from rest_framework import serializers

from .models import Survey, SurveyQuestion


class SurveySerializer(serializers.ModelSerializer):
    class Meta:
        model = Survey
        fields = ['id', 'title', 'intro', 'status', 'open_at', 'close_at', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_title(self, value):
        if not value.strip():
            raise serializers.ValidationError('Title is required')
        return value.strip()

    def validate(self, data):
        open_at = data.get('open_at', getattr(self.instance, 'open_at', None))
        close_at = data.get('close_at', getattr(self.instance, 'close_at', None))
        if open_at and close_at and open_at >= close_at:
            raise serializers.ValidationError('open_at must be before close_at')
        return data


class SurveyQuestionSerializer(serializers.ModelSerializer):
    class Meta:
        model = SurveyQuestion
        fields = ['id', 'order_no', 'label', 'qtype', 'options', 'required']
