# assessment/urls.py
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import DepartmentAssessmentViewSet, RubricLookupViewSet, StudentFeedbackViewSet, TeacherViewSet

router = DefaultRouter()
router.include_root_view = False
router.register(r'department', DepartmentAssessmentViewSet, basename='department-assessment')
router.register(r'rubrics', RubricLookupViewSet, basename='rubrics')
router.register(r'teacher', TeacherViewSet, basename='teacher')
router.register(r'student', StudentFeedbackViewSet, basename='student-feedback')

urlpatterns = [
    path('', include(router.urls)),
]
