# user_management/signals.py
import logging

from django.apps import apps

logger = logging.getLogger(__name__)

ACTIONS = ['view', 'create', 'update', 'delete']
PERMISSION_APPS = ['user_management', 'curriculum', 'assessment', 'evaluation360', 'surveys']


def create_permissions(sender, **kwargs):
    """Generate view/create/update/delete permissions for every domain model."""
    from .models import Module, Permission

    created_count = 0
    for app_label in PERMISSION_APPS:
        try:
            app_config = apps.get_app_config(app_label)
        except LookupError:
            continue

        module, _ = Module.objects.get_or_create(name=app_label)
        for model in app_config.get_models():
            model_name = model._meta.model_name
            for action in ACTIONS:
                codename = f"{app_label}:{model_name}:{action}"
                _, created = Permission.objects.get_or_create(
                    codename=codename,
                    defaults={'module': module, 'resource': model_name, 'action': action},
                )
                created_count += int(created)

    if created_count:
        logger.info(f"Created {created_count} permissions")
    return created_count
