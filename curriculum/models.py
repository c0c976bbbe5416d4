# curriculum/models.py
from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from user_management.models import Department, TimeStampedModel

LEVEL_VALIDATORS = [MinValueValidator(1), MaxValueValidator(4)]


class Framework(TimeStampedModel):
    """A curriculum framework: one cohort of one major."""
    cohort = models.CharField(max_length=200)
    major = models.CharField(max_length=200)
    academic_year = models.CharField(max_length=50)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='frameworks_created'
    )

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.label

    @property
    def label(self):
        return f"{self.cohort} – {self.major} – NK {self.academic_year}"

    @property
    def short_label(self):
        return f"{self.cohort} • {self.major} • {self.academic_year}"


class PLO(models.Model):
    framework = models.ForeignKey(Framework, on_delete=models.CASCADE, related_name='plos')
    code = models.CharField(max_length=50)
    description = models.TextField(blank=True)

    class Meta:
        ordering = ['code']
        unique_together = ['framework', 'code']

    def __str__(self):
        return self.code


class PI(models.Model):
    framework = models.ForeignKey(Framework, on_delete=models.CASCADE, related_name='pis')
    code = models.CharField(max_length=50)
    description = models.TextField(blank=True)

    class Meta:
        ordering = ['code']
        unique_together = ['framework', 'code']

    def __str__(self):
        return self.code


class Course(models.Model):
    framework = models.ForeignKey(Framework, on_delete=models.CASCADE, related_name='courses')
    course_code = models.CharField(max_length=50)
    course_name = models.CharField(max_length=255, blank=True)
    credits = models.PositiveSmallIntegerField(null=True, blank=True)
    department = models.ForeignKey(
        Department,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='courses'
    )

    class Meta:
        ordering = ['course_code']
        unique_together = ['framework', 'course_code']

    def __str__(self):
        return f"{self.course_code} - {self.course_name}"


class CLO(models.Model):
    framework = models.ForeignKey(Framework, on_delete=models.CASCADE, related_name='clos')
    course_code = models.CharField(max_length=50)
    clo_code = models.CharField(max_length=50)
    clo_text = models.TextField(blank=True)

    class Meta:
        ordering = ['course_code', 'clo_code']
        unique_together = ['framework', 'course_code', 'clo_code']

    def __str__(self):
        return f"{self.course_code}:{self.clo_code}"


class PloPiLink(models.Model):
    framework = models.ForeignKey(Framework, on_delete=models.CASCADE, related_name='plo_pi_links')
    plo_code = models.CharField(max_length=50)
    pi_code = models.CharField(max_length=50)
    level = models.PositiveSmallIntegerField(default=1, validators=LEVEL_VALIDATORS)

    class Meta:
        ordering = ['plo_code', 'pi_code']
        unique_together = ['framework', 'plo_code', 'pi_code']


class PloCloLink(models.Model):
    framework = models.ForeignKey(Framework, on_delete=models.CASCADE, related_name='plo_clo_links')
    plo_code = models.CharField(max_length=50)
    course_code = models.CharField(max_length=50)
    clo_code = models.CharField(max_length=50)
    level = models.PositiveSmallIntegerField(default=1, validators=LEVEL_VALIDATORS)

    class Meta:
        ordering = ['plo_code', 'course_code', 'clo_code']
        unique_together = ['framework', 'plo_code', 'course_code', 'clo_code']


class PiCloLink(models.Model):
    framework = models.ForeignKey(Framework, on_delete=models.CASCADE, related_name='pi_clo_links')
    pi_code = models.CharField(max_length=50)
    course_code = models.CharField(max_length=50)
    clo_code = models.CharField(max_length=50)
    level = models.PositiveSmallIntegerField(default=1, validators=LEVEL_VALIDATORS)

    class Meta:
        ordering = ['pi_code', 'course_code', 'clo_code']
        unique_together = ['framework', 'pi_code', 'course_code', 'clo_code']


class Student(TimeStampedModel):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='student_profile'
    )
    framework = models.ForeignKey(Framework, on_delete=models.CASCADE, related_name='students')
    mssv = models.CharField(max_length=30, unique=True)
    student_code = models.CharField(max_length=30, blank=True)
    full_name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)

    class Meta:
        ordering = ['mssv']

    def __str__(self):
        return f"{self.mssv} - {self.full_name}"


class StudentCloResult(models.Model):
    STATUS_ACHIEVED = 'achieved'
    STATUS_NOT_YET = 'not_yet'
    STATUS_CHOICES = [
        (STATUS_ACHIEVED, 'Achieved'),
        (STATUS_NOT_YET, 'Not yet'),
    ]
    SOURCE_CHOICES = [
        ('upload', 'Upload'),
        ('observation', 'Observation'),
    ]

    framework = models.ForeignKey(Framework, on_delete=models.CASCADE, related_name='clo_results')
    student = models.ForeignKey(
        Student,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='clo_results'
    )
    mssv = models.CharField(max_length=30)
    course_code = models.CharField(max_length=50)
    clo_code = models.CharField(max_length=50)
    plo_code = models.CharField(max_length=50, blank=True)
    level = models.PositiveSmallIntegerField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_NOT_YET)
    score = models.FloatField(null=True, blank=True)
    source = models.CharField(max_length=20, choices=SOURCE_CHOICES, default='upload')
    observation = models.ForeignKey(
        'assessment.Observation',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='clo_results'
    )
    effective_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-effective_at', '-id']
        indexes = [
            models.Index(fields=['framework', 'mssv']),
            models.Index(fields=['framework', 'course_code', 'clo_code']),
            models.Index(fields=['framework', 'mssv', 'effective_at']),
        ]

    def __str__(self):
        return f"{self.mssv} {self.course_code}:{self.clo_code} {self.status}"

    @property
    def is_achieved(self):
        return self.status == self.STATUS_ACHIEVED
