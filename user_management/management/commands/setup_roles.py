# user_management/management/commands/setup_roles.py
from django.core.management.base import BaseCommand
from django.db.models import Q

from user_management.constants import RoleCode
from user_management.models import Permission, Role
from user_management.signals import create_permissions

# Resources (model names) each role may touch; admin gets everything.
ROLE_RESOURCES = {
    RoleCode.QA: {
        'all': ['survey', 'surveyquestion', 'surveyassignment', 'eval360form', 'evaluationcampaign'],
        'view': ['framework', 'plo', 'pi', 'course', 'clo', 'studentcloresult', 'surveyresponse'],
    },
    RoleCode.EDU_MANAGER: {
        'all': ['framework', 'plo', 'pi', 'course', 'clo', 'plopilink', 'ploclolink', 'piclolink', 'student'],
        'view': ['department'],
    },
    RoleCode.DEPT_LEAD: {
        'all': ['rubric', 'studentcloresult', 'course'],
        'view': ['framework', 'plo', 'pi', 'clo', 'student', 'feedback', 'survey'],
    },
    RoleCode.DEPT_SECRETARY: {
        'all': ['rubric', 'studentcloresult'],
        'view': ['framework', 'course', 'clo', 'student', 'feedback'],
    },
    RoleCode.LECTURER: {
        'all': ['observation', 'observationitemscore', 'feedback', 'teacherinboxitem'],
        'view': ['rubric', 'student', 'framework', 'course', 'clo', 'evaluationrequest'],
    },
    RoleCode.STUDENT: {
        'all': ['feedback', 'surveyresponse', 'surveyanswer'],
        'view': ['course', 'studentcloresult', 'evaluationrequest'],
    },
}


class Command(BaseCommand):
    help = 'Create default roles and assign permissions'

    def handle(self, *args, **kwargs):
        create_permissions(sender=None)

        self.stdout.write(self.style.SUCCESS('Creating roles...'))

        for code, label in RoleCode.choices:
            role, created = Role.objects.get_or_create(code=code, defaults={'label': label})
            if created:
                self.stdout.write(self.style.SUCCESS(f"Created role: {code}"))
            elif role.label != label:
                role.label = label
                role.save(update_fields=['label'])

            if code == RoleCode.ADMIN:
                role.permissions.set(Permission.objects.all())
                continue

            grants = ROLE_RESOURCES.get(code, {})
            role.permissions.set(
                Permission.objects.filter(
                    Q(resource__in=grants.get('all', []))
                    | Q(resource__in=grants.get('view', []), action='view')
                )
            )

        self.stdout.write(self.style.SUCCESS('Role setup completed!'))
