# surveys/urls.py
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import MySurveysView, ParticipantListView, QASurveyViewSet, SurveyRespondView

router = DefaultRouter()
router.include_root_view = False
router.register(r'qa/surveys', QASurveyViewSet, basename='qa-surveys')

urlpatterns = [
    path('qa/participants/', ParticipantListView.as_view(), name='qa_participants'),
    path('student/surveys/', MySurveysView.as_view(), name='student_surveys'),
    path('teacher/surveys/', MySurveysView.as_view(), name='teacher_surveys'),
    path('surveys/<int:survey_id>/respond/', SurveyRespondView.as_view(), name='survey_respond'),
    path('', include(router.urls)),
]
