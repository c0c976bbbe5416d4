# assessment/models.py
import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from curriculum.models import Framework, Student
from user_management.models import TimeStampedModel


class Rubric(TimeStampedModel):
    """Scoring template. ``definition`` holds ``{"columns": [...], "rows": [...]}``."""
    framework = models.ForeignKey(Framework, on_delete=models.CASCADE, related_name='rubrics')
    course_code = models.CharField(max_length=50)
    title = models.CharField(max_length=255)
    definition = models.JSONField(default=dict, blank=True)
    threshold = models.FloatField(default=70)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='rubrics_created'
    )

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.title

    @property
    def columns(self):
        return normalize_definition(self.definition)['columns']

    @property
    def rows(self):
        return normalize_definition(self.definition)['rows']


def normalize_definition(definition):
    """Coerce a rubric definition into ``{columns: [{key, label}], rows: [{id, label, clo_ids}]}``."""
    definition = definition or {}
    columns = []
    for index, column in enumerate(definition.get('columns') or []):
        if isinstance(column, dict):
            key = str(column.get('key') or f"L{index + 1}")
            label = str(column.get('label') or key)
        else:
            key, label = f"L{index + 1}", str(column)
        columns.append({'key': key, 'label': label})

    rows = []
    for row in definition.get('rows') or []:
        if not isinstance(row, dict):
            row = {'label': str(row)}
        clo_ids = row.get('clo_ids')
        if not clo_ids:
            clo_ids = [row['clo_code']] if row.get('clo_code') else []
        rows.append({
            'id': str(row.get('id') or uuid.uuid4()),
            'label': str(row.get('label') or row.get('criterion') or ''),
            'clo_ids': [str(c) for c in clo_ids],
        })
    return {'columns': columns, 'rows': rows}


class Observation(TimeStampedModel):
    KIND_DIRECT = 'direct'
    KIND_EVAL360 = 'eval360'
    KIND_CHOICES = [
        (KIND_DIRECT, 'Direct observation'),
        (KIND_EVAL360, '360 evaluation'),
    ]
    STATUS_DRAFT = 'draft'
    STATUS_SUBMITTED = 'submitted'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_SUBMITTED, 'Submitted'),
    ]

    rubric = models.ForeignKey(Rubric, on_delete=models.PROTECT, related_name='observations')
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='observations')
    teacher = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='observations'
    )
    rater_name = models.CharField(max_length=200, blank=True)
    framework = models.ForeignKey(Framework, on_delete=models.CASCADE, null=True, blank=True, related_name='observations')
    course_code = models.CharField(max_length=50, blank=True)
    kind = models.CharField(max_length=20, choices=KIND_CHOICES, default=KIND_DIRECT)
    group_code = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    overall_comment = models.TextField(blank=True)
    note = models.TextField(blank=True)
    total_score = models.FloatField(null=True, blank=True)
    observed_at = models.DateTimeField(default=timezone.now)
    submitted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-observed_at']

    def __str__(self):
        return f"{self.rubric.title} / {self.student.mssv} ({self.status})"

    @property
    def is_submitted(self):
        return self.status == self.STATUS_SUBMITTED


class ObservationItemScore(models.Model):
    observation = models.ForeignKey(Observation, on_delete=models.CASCADE, related_name='items')
    item_key = models.CharField(max_length=100)
    selected_level = models.CharField(max_length=50, blank=True)
    level_rank = models.PositiveSmallIntegerField(null=True, blank=True)
    level_label = models.CharField(max_length=200, blank=True)
    score = models.FloatField(null=True, blank=True)
    comment = models.TextField(blank=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.item_key}={self.selected_level}"


class Feedback(TimeStampedModel):
    KIND_CHOICES = [
        ('course', 'Course'),
        ('faculty', 'Faculty'),
        ('student', 'Student'),
    ]
    MODERATION_CHOICES = [
        ('pass', 'Pass'),
        ('reject', 'Reject'),
        ('pending', 'Pending'),
    ]

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='feedback_sent'
    )
    sender_role = models.CharField(max_length=20, default='student')
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    target = models.CharField(max_length=200, blank=True)
    to_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='feedback_received'
    )
    text = models.TextField()
    course_code = models.CharField(max_length=50, blank=True)
    clo_ids = models.JSONField(default=list, blank=True)
    visibility = models.CharField(max_length=20, default='staff')
    moderation_status = models.CharField(max_length=20, choices=MODERATION_CHOICES, default='pass')

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.kind}:{self.target}"


class TeacherInboxItem(TimeStampedModel):
    STATUS_CHOICES = [
        ('unread', 'Unread'),
        ('read', 'Read'),
        ('archived', 'Archived'),
    ]

    teacher = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='inbox_items')
    feedback = models.ForeignKey(Feedback, on_delete=models.CASCADE, null=True, blank=True, related_name='inbox_items')
    course_code = models.CharField(max_length=50, blank=True)
    clo_ids = models.JSONField(default=list, blank=True)
    message = models.TextField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='unread')
    tags = models.JSONField(default=list, blank=True)
    is_flagged = models.BooleanField(default=False)

    class Meta:
        ordering = ['-created_at']
