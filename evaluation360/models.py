# evaluation360/models.py
from django.conf import settings
from django.db import models
from django.utils import timezone

from assessment.models import Observation, Rubric
from curriculum.models import Framework
from user_management.models import TimeStampedModel


class GroupCode(models.TextChoices):
    SELF = 'self', 'Self'
    PEER = 'peer', 'Peer'
    FACULTY = 'faculty', 'Faculty'
    SUPERVISOR = 'supervisor', 'Supervisor'
    PATIENT = 'patient', 'Patient'


class Eval360Form(TimeStampedModel):
    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
    ]

    title = models.CharField(max_length=255)
    group_code = models.CharField(max_length=20, choices=GroupCode.choices)
    rubric = models.ForeignKey(Rubric, on_delete=models.PROTECT, related_name='eval360_forms')
    framework = models.ForeignKey(Framework, on_delete=models.SET_NULL, null=True, blank=True, related_name='eval360_forms')
    course_code = models.CharField(max_length=50, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    public_enabled = models.BooleanField(default=False)
    public_slug = models.SlugField(max_length=100, unique=True, null=True, blank=True)

    class Meta:
        ordering = ['-updated_at']
        verbose_name = '360 form'

    def __str__(self):
        return f"{self.title} ({self.group_code})"

    @property
    def is_active(self):
        return self.status == self.STATUS_ACTIVE


class CampaignQuerySet(models.QuerySet):
    def open(self, now=None):
        now = now or timezone.now()
        return self.filter(start_at__lte=now, end_at__gt=now)


class EvaluationCampaign(TimeStampedModel):
    name = models.CharField(max_length=255)
    rubric = models.ForeignKey(Rubric, on_delete=models.CASCADE, related_name='campaigns')
    framework = models.ForeignKey(Framework, on_delete=models.SET_NULL, null=True, blank=True, related_name='campaigns')
    course_code = models.CharField(max_length=50, blank=True)
    start_at = models.DateTimeField()
    end_at = models.DateTimeField()
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='campaigns_created'
    )

    objects = CampaignQuerySet.as_manager()

    class Meta:
        ordering = ['-start_at']

    def __str__(self):
        return self.name

    def is_open(self, now=None):
        now = now or timezone.now()
        return self.start_at <= now < self.end_at

    def matches(self, form):
        """A campaign serves a form with the same rubric; framework and course only bind when set."""
        if self.rubric_id != form.rubric_id:
            return False
        if self.framework_id and self.framework_id != form.framework_id:
            return False
        if self.course_code and self.course_code != form.course_code:
            return False
        return True


class EvaluationRequest(TimeStampedModel):
    STATUS_PENDING = 'pending'
    STATUS_SUBMITTED = 'submitted'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SUBMITTED, 'Submitted'),
    ]

    campaign = models.ForeignKey(EvaluationCampaign, on_delete=models.CASCADE, related_name='requests')
    form = models.ForeignKey(Eval360Form, on_delete=models.CASCADE, related_name='requests')
    evaluator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='evaluation_tasks'
    )
    evaluatee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='evaluations_received'
    )
    group_code = models.CharField(max_length=20, choices=GroupCode.choices)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    observation = models.OneToOneField(
        Observation,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='evaluation_request'
    )
    submitted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Request {self.pk} ({self.status})"


class PublicSubmission(models.Model):
    form = models.ForeignKey(Eval360Form, on_delete=models.CASCADE, related_name='public_submissions')
    rubric = models.ForeignKey(Rubric, on_delete=models.CASCADE, related_name='public_submissions')
    observation = models.ForeignKey(Observation, on_delete=models.SET_NULL, null=True, blank=True)
    target_mssv = models.CharField(max_length=50)
    answers = models.JSONField(default=dict)
    note = models.TextField(blank=True)
    rater_name = models.CharField(max_length=200, blank=True)
    rater_relation = models.CharField(max_length=100, blank=True)
    consent = models.BooleanField(default=False)
    ip_hash = models.CharField(max_length=64, blank=True)
    user_agent = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
