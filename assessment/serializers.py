# assessment/serializers.py
from rest_framework import serializers

from curriculum.models import Framework

from .models import Feedback, Observation, ObservationItemScore, Rubric, TeacherInboxItem, normalize_definition


class RubricSerializer(serializers.ModelSerializer):
    class Meta:
        model = Rubric
        fields = ['id', 'framework_id', 'course_code', 'title', 'definition', 'threshold', 'created_at']


class NormalizedRubricSerializer(serializers.ModelSerializer):
    definition = serializers.SerializerMethodField()

    class Meta:
        model = Rubric
        fields = ['id', 'framework_id', 'course_code', 'title', 'definition', 'threshold']

    def get_definition(self, obj):
        return normalize_definition(obj.definition)


class RubricWriteSerializer(serializers.Serializer):
    """Create or update a rubric; ``columns`` and ``rows`` are stored normalised."""
    framework_id = serializers.PrimaryKeyRelatedField(queryset=Framework.objects.all(), source='framework')
    course_code = serializers.CharField(max_length=50)
    title = serializers.CharField(max_length=255)
    columns = serializers.ListField(child=serializers.JSONField())
    rows = serializers.ListField(child=serializers.JSONField())
    threshold = serializers.FloatField(required=False, min_value=0, max_value=100)

    def validate(self, data):
        if 'columns' in data or 'rows' in data:
            instance = self.instance
            current = normalize_definition(instance.definition) if instance else {'columns': [], 'rows': []}
            data['definition'] = normalize_definition({
                'columns': data.pop('columns', current['columns']),
                'rows': data.pop('rows', current['rows']),
            })
        return data

    def create(self, validated_data):
        return Rubric.objects.create(**validated_data)

    def update(self, instance, validated_data):
        for field, value in validated_data.items():
            setattr(instance, field, value)
        instance.save()
        return instance


class ObservationItemScoreSerializer(serializers.ModelSerializer):
    class Meta:
        model = ObservationItemScore
        fields = ['item_key', 'selected_level', 'level_rank', 'level_label', 'score', 'comment']


class ObservationSerializer(serializers.ModelSerializer):
    student_user_id = serializers.SerializerMethodField()
    items = ObservationItemScoreSerializer(many=True, read_only=True)

    class Meta:
        model = Observation
        fields = [
            'id', 'rubric_id', 'student_id', 'student_user_id', 'framework_id', 'course_code',
            'kind', 'status', 'overall_comment', 'total_score', 'observed_at', 'submitted_at',
            'created_at', 'items',
        ]

    def get_student_user_id(self, obj):
        return str(obj.student.user_id) if obj.student.user_id else None


class FeedbackSerializer(serializers.ModelSerializer):
    class Meta:
        model = Feedback
        fields = [
            'id', 'created_at', 'sender_role', 'kind', 'target', 'to_user_id', 'text',
            'course_code', 'clo_ids', 'visibility', 'moderation_status',
        ]


class TeacherInboxItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = TeacherInboxItem
        fields = ['id', 'created_at', 'status', 'course_code', 'clo_ids', 'message', 'tags', 'is_flagged']


class InboxUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=TeacherInboxItem.STATUS_CHOICES, required=False)
    tags = serializers.ListField(child=serializers.CharField(max_length=50), required=False)
    is_flagged = serializers.BooleanField(required=False)

    def validate(self, data):
        if not data:
            raise serializers.ValidationError('Nothing to update')
        return data
