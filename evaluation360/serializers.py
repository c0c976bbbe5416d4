# evaluation360/serializers.py
from rest_framework import serializers

from assessment.models import Rubric
from assessment.serializers import NormalizedRubricSerializer
from curriculum.models import Framework

from .models import Eval360Form, EvaluationCampaign, GroupCode


class Eval360FormSerializer(serializers.ModelSerializer):
    rubric_id = serializers.PrimaryKeyRelatedField(queryset=Rubric.objects.all(), source='rubric')
    framework_id = serializers.PrimaryKeyRelatedField(
        queryset=Framework.objects.all(), source='framework', required=False, allow_null=True
    )
    group_code = serializers.ChoiceField(
        choices=GroupCode.choices,
        error_messages={'invalid_choice': 'Invalid group_code'},
    )
    public_slug = serializers.SlugField(max_length=100, required=False, allow_null=True, allow_blank=True)

    class Meta:
        model = Eval360Form
        fields = [
            'id', 'title', 'group_code', 'rubric_id', 'framework_id', 'course_code',
            'status', 'public_enabled', 'public_slug', 'updated_at',
        ]
        read_only_fields = ['updated_at']

    def validate_public_slug(self, value):
        if not value:
            return None
        queryset = Eval360Form.objects.filter(public_slug=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('This slug is already in use')
        return value

    def validate(self, data):
        public_enabled = data.get('public_enabled', getattr(self.instance, 'public_enabled', False))
        public_slug = data.get('public_slug', getattr(self.instance, 'public_slug', None))
        if public_enabled and not public_slug:
            raise serializers.ValidationError({'public_slug': 'A public form needs a slug'})
        return data


class PublicFormSerializer(serializers.ModelSerializer):
    slug = serializers.CharField(source='public_slug')

    class Meta:
        model = Eval360Form
        fields = ['id', 'title', 'group_code', 'rubric_id', 'framework_id', 'course_code', 'slug']


class PublicFormDetailSerializer(serializers.Serializer):
    form = serializers.SerializerMethodField()
    rubric = serializers.SerializerMethodField()

    def get_form(self, obj):
        return PublicFormSerializer(obj).data

    def get_rubric(self, obj):
        return NormalizedRubricSerializer(obj.rubric).data


class CampaignSerializer(serializers.ModelSerializer):
    class Meta:
        model = EvaluationCampaign
        fields = ['id', 'name', 'start_at', 'end_at', 'rubric_id', 'framework_id', 'course_code']


class CampaignCreateSerializer(serializers.Serializer):
    form_id = serializers.PrimaryKeyRelatedField(queryset=Eval360Form.objects.all(), source='form')
    name = serializers.CharField(max_length=255)
    start_at = serializers.DateTimeField()
    end_at = serializers.DateTimeField()

    def validate(self, data):
        if data['start_at'] >= data['end_at']:
            raise serializers.ValidationError('start_at must be before end_at')
        return data

    def create(self, validated_data):
        form = validated_data['form']
        return EvaluationCampaign.objects.create(
            name=validated_data['name'],
            rubric=form.rubric,
            framework=form.framework,
            course_code=form.course_code,
            start_at=validated_data['start_at'],
            end_at=validated_data['end_at'],
            created_by=validated_data.get('created_by'),
        )
