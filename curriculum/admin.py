from django.contrib import admin

from .models import CLO, PI, PLO, Course, Framework, PiCloLink, PloCloLink, PloPiLink, Student, StudentCloResult


@admin.register(Framework)
class FrameworkAdmin(admin.ModelAdmin):
    list_display = ['id', 'cohort', 'major', 'academic_year', 'created_at']
    search_fields = ['cohort', 'major', 'academic_year']


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ['course_code', 'course_name', 'credits', 'framework', 'department']
    list_filter = ['framework', 'department']
    search_fields = ['course_code', 'course_name']


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ['mssv', 'full_name', 'email', 'framework']
    list_filter = ['framework']
    search_fields = ['mssv', 'full_name', 'email']
    raw_id_fields = ['user']


@admin.register(StudentCloResult)
class StudentCloResultAdmin(admin.ModelAdmin):
    list_display = ['mssv', 'course_code', 'clo_code', 'status', 'source', 'updated_at']
    list_filter = ['framework', 'status', 'source']
    search_fields = ['mssv', 'course_code', 'clo_code']
    raw_id_fields = ['student', 'observation']


for model in (PLO, PI, CLO, PloPiLink, PloCloLink, PiCloLink):
    admin.site.register(model)
