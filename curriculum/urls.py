# curriculum/urls.py
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views.academic import AcademicAffairsViewSet, StudentAdminView
from .views.common import AttainmentView, ClassHeatmapView, CommonViewSet, CourseListView
from .views.department import DepartmentResultsViewSet
from .views.student import StudentPortalViewSet

router = DefaultRouter()
router.include_root_view = False
router.register(r'academic-affairs', AcademicAffairsViewSet, basename='academic-affairs')
router.register(r'department', DepartmentResultsViewSet, basename='department-results')
router.register(r'student', StudentPortalViewSet, basename='student-portal')
router.register(r'common', CommonViewSet, basename='common')

urlpatterns = [
    path('academic-affairs/students/', StudentAdminView.as_view(), name='academic_students'),
    path('courses/list/', CourseListView.as_view(), name='courses_list'),
    path('class-heatmap/', ClassHeatmapView.as_view(), name='class_heatmap'),
    path('qa/attainment/', AttainmentView.as_view(), name='qa_attainment'),
    path('', include(router.urls)),
]
