from django.contrib import admin

from .models import Feedback, Observation, ObservationItemScore, Rubric, TeacherInboxItem


@admin.register(Rubric)
class RubricAdmin(admin.ModelAdmin):
    list_display = ['title', 'course_code', 'framework', 'threshold', 'created_at']
    list_filter = ['framework']
    search_fields = ['title', 'course_code']


class ObservationItemScoreInline(admin.TabularInline):
    model = ObservationItemScore
    extra = 0


@admin.register(Observation)
class ObservationAdmin(admin.ModelAdmin):
    list_display = ['id', 'rubric', 'student', 'teacher', 'kind', 'status', 'total_score', 'observed_at']
    list_filter = ['kind', 'status']
    search_fields = ['student__mssv', 'student__full_name', 'rubric__title']
    raw_id_fields = ['student', 'teacher', 'rubric']
    inlines = [ObservationItemScoreInline]


@admin.register(Feedback)
class FeedbackAdmin(admin.ModelAdmin):
    list_display = ['kind', 'target', 'sender_role', 'moderation_status', 'created_at']
    list_filter = ['kind', 'sender_role', 'moderation_status']
    search_fields = ['target', 'text']


@admin.register(TeacherInboxItem)
class TeacherInboxItemAdmin(admin.ModelAdmin):
    list_display = ['teacher', 'course_code', 'status', 'is_flagged', 'created_at']
    list_filter = ['status', 'is_flagged']
