from django.contrib import admin

from .models import Survey, SurveyAnswer, SurveyAssignment, SurveyQuestion, SurveyResponse


class SurveyQuestionInline(admin.TabularInline):
    model = SurveyQuestion
    extra = 0


@admin.register(Survey)
class SurveyAdmin(admin.ModelAdmin):
    list_display = ['title', 'status', 'open_at', 'close_at', 'created_at']
    list_filter = ['status']
    search_fields = ['title']
    inlines = [SurveyQuestionInline]


@admin.register(SurveyAssignment)
class SurveyAssignmentAdmin(admin.ModelAdmin):
    list_display = ['survey', 'user_email', 'role', 'status', 'invited_at']
    list_filter = ['role', 'status']
    search_fields = ['user_email', 'user_name']
    readonly_fields = ['token']


class SurveyAnswerInline(admin.TabularInline):
    model = SurveyAnswer
    extra = 0


@admin.register(SurveyResponse)
class SurveyResponseAdmin(admin.ModelAdmin):
    list_display = ['survey', 'respondent', 'is_submitted', 'submitted_at']
    list_filter = ['is_submitted']
    inlines = [SurveyAnswerInline]
