from django.contrib import admin

from .models import Eval360Form, EvaluationCampaign, EvaluationRequest, PublicSubmission


@admin.register(Eval360Form)
class Eval360FormAdmin(admin.ModelAdmin):
    list_display = ['title', 'group_code', 'rubric', 'status', 'public_enabled', 'public_slug']
    list_filter = ['group_code', 'status', 'public_enabled']
    search_fields = ['title', 'public_slug']


@admin.register(EvaluationCampaign)
class EvaluationCampaignAdmin(admin.ModelAdmin):
    list_display = ['name', 'rubric', 'course_code', 'start_at', 'end_at']
    search_fields = ['name', 'course_code']


@admin.register(EvaluationRequest)
class EvaluationRequestAdmin(admin.ModelAdmin):
    list_display = ['id', 'campaign', 'form', 'evaluator', 'evaluatee', 'group_code', 'status', 'submitted_at']
    list_filter = ['status', 'group_code']
    raw_id_fields = ['evaluator', 'evaluatee', 'observation']


@admin.register(PublicSubmission)
class PublicSubmissionAdmin(admin.ModelAdmin):
    list_display = ['form', 'target_mssv', 'rater_name', 'rater_relation', 'created_at']
    readonly_fields = ['ip_hash', 'user_agent']
