# surveys/models.py
import secrets

from django.conf import settings
from django.db import models
from django.utils import timezone

from curriculum.models import Framework
from user_management.models import Department, TimeStampedModel


def generate_token():
    return secrets.token_hex(24)


class Survey(TimeStampedModel):
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('archived', 'Archived'),
    ]

    title = models.CharField(max_length=255)
    intro = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='inactive')
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='surveys_created'
    )
    open_at = models.DateTimeField(null=True, blank=True)
    close_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.title

    @property
    def is_active(self):
        if self.status != 'active':
            return False
        now = timezone.now()
        if self.open_at and now < self.open_at:
            return False
        if self.close_at and now >= self.close_at:
            return False
        return True


class SurveyQuestion(models.Model):
    QTYPE_CHOICES = [
        ('single', 'Single choice'),
        ('multi', 'Multiple choice'),
        ('text', 'Free text'),
    ]

    survey = models.ForeignKey(Survey, on_delete=models.CASCADE, related_name='questions')
    order_no = models.PositiveIntegerField(default=0)
    label = models.TextField()
    qtype = models.CharField(max_length=10, choices=QTYPE_CHOICES)
    options = models.JSONField(default=list, blank=True)
    required = models.BooleanField(default=False)

    class Meta:
        ordering = ['order_no', 'id']

    def __str__(self):
        return self.label[:50]

    @property
    def option_values(self):
        values = []
        for option in self.options or []:
            if isinstance(option, dict):
                values.append(str(option.get('value', option.get('label', ''))))
            else:
                values.append(str(option))
        return values


class SurveyAssignment(TimeStampedModel):
    ROLE_CHOICES = [
        ('lecturer', 'Giảng viên'),
        ('student', 'Sinh viên'),
        ('support', 'Hỗ trợ'),
    ]
    STATUS_CHOICES = [
        ('assigned', 'Assigned'),
        ('invited', 'Invited'),
    ]

    survey = models.ForeignKey(Survey, on_delete=models.CASCADE, related_name='assignments')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='survey_assignments')
    user_email = models.EmailField(blank=True)
    user_name = models.CharField(max_length=200, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES)
    department = models.ForeignKey(Department, on_delete=models.SET_NULL, null=True, blank=True)
    framework = models.ForeignKey(Framework, on_delete=models.SET_NULL, null=True, blank=True)
    token = models.CharField(max_length=48, unique=True, default=generate_token)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='assigned')
    invited_at = models.DateTimeField(null=True, blank=True)
    last_reminded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['created_at']
        unique_together = ['survey', 'user']

    def __str__(self):
        return f"{self.survey} -> {self.user_email}"


class SurveyResponse(TimeStampedModel):
    survey = models.ForeignKey(Survey, on_delete=models.CASCADE, related_name='responses')
    respondent = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='survey_responses')
    is_submitted = models.BooleanField(default=False)
    submitted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        unique_together = ['survey', 'respondent']


class SurveyAnswer(models.Model):
    response = models.ForeignKey(SurveyResponse, on_delete=models.CASCADE, related_name='answers')
    question = models.ForeignKey(SurveyQuestion, on_delete=models.CASCADE, related_name='answers')
    option = models.CharField(max_length=255, blank=True)
    free_text = models.TextField(blank=True)

    class Meta:
        ordering = ['id']
