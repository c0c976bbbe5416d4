# evaluation360/urls.py
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import Eval360ViewSet, MyTasksView, PublicEval360ViewSet

router = DefaultRouter()
router.include_root_view = False
router.register(r'360/public', PublicEval360ViewSet, basename='eval360-public')
router.register(r'360', Eval360ViewSet, basename='eval360')

urlpatterns = [
    path('my-tasks/', MyTasksView.as_view(), name='my_tasks'),
    path('', include(router.urls)),
]
