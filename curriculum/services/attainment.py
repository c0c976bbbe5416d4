# curriculum/services/attainment.py
"""Roll student CLO results up into PI and PLO progress, coverage and attainment."""
from collections import OrderedDict, defaultdict

from ..models import CLO, PI, PLO, Course, PiCloLink, PloCloLink, Student, StudentCloResult

ACHIEVED = StudentCloResult.STATUS_ACHIEVED
NOT_YET = StudentCloResult.STATUS_NOT_YET


def latest_results(queryset):
    """Latest result per (mssv, course_code, clo_code) from a result queryset.

    Recency is the result's effective time, not when the row was last written.
    """
    latest = OrderedDict()
    for result in queryset.order_by('-effective_at', '-id'):
        key = (result.mssv, result.course_code, result.clo_code)
        if key not in latest:
            latest[key] = result
    return latest


def percent(part, whole):
    return round(part * 100.0 / whole, 1) if whole else 0.0


def _links_for(framework, kind):
    if kind == 'pi':
        return PiCloLink.objects.filter(framework=framework), 'pi_code', PI
    return PloCloLink.objects.filter(framework=framework), 'plo_code', PLO


def student_outcome_progress(student, kind='plo'):
    """Per PLO (or PI), the student's status on every mapped CLO.

    The student's own results come first; mapped CLOs the student has no
    result for are filled in as not yet achieved.
    """
    framework = student.framework
    links, code_attr, outcome_model = _links_for(framework, kind)
    descriptions = dict(outcome_model.objects.filter(framework=framework).values_list('code', 'description'))

    latest = latest_results(StudentCloResult.objects.filter(framework=framework, mssv=student.mssv))
    statuses = {(course, clo): result.status for (_, course, clo), result in latest.items()}

    groups = OrderedDict()
    for link in links.order_by(code_attr, 'course_code', 'clo_code'):
        code = getattr(link, code_attr)
        group = groups.setdefault(code, {'own': [], 'missing': []})
        key = (link.course_code, link.clo_code)
        item = {
            'course_code': link.course_code,
            'clo_code': link.clo_code,
            'level': link.level,
            'status': statuses.get(key, NOT_YET),
        }
        group['own' if key in statuses else 'missing'].append(item)

    return [
        {
            kind: {'code': code, 'description': descriptions.get(code, '')},
            'items': group['own'] + group['missing'],
        }
        for code, group in groups.items()
    ]


def _outcome_summary(framework, kind, latest):
    links, code_attr, outcome_model = _links_for(framework, kind)

    linked = defaultdict(set)
    for code, course_code, clo_code in links.values_list(code_attr, 'course_code', 'clo_code'):
        linked[code].add((course_code, clo_code))

    by_clo = defaultdict(list)
    for (_, course_code, clo_code), result in latest.items():
        by_clo[(course_code, clo_code)].append(result.status)

    summary = []
    outcome_codes = list(outcome_model.objects.filter(framework=framework).values_list('code', flat=True))
    for code in sorted(set(outcome_codes) | set(linked)):
        clos = linked.get(code, set())
        covered = [clo for clo in clos if by_clo.get(clo)]
        statuses = [status for clo in clos for status in by_clo.get(clo, [])]
        achieved = len([s for s in statuses if s == ACHIEVED])
        summary.append({
            'code': code,
            'linked_clos': len(clos),
            'covered_clos': len(covered),
            'coverage_pct': percent(len(covered), len(clos)),
            'results': len(statuses),
            'achieved': achieved,
            'attainment_pct': percent(achieved, len(statuses)),
        })
    return summary


def framework_attainment(framework):
    """Coverage and attainment per PLO and PI, from latest results only."""
    latest = latest_results(StudentCloResult.objects.filter(framework=framework))
    return {
        'plos': _outcome_summary(framework, 'plo', latest),
        'pis': _outcome_summary(framework, 'pi', latest),
    }


def department_metrics(framework, course_code=None):
    queryset = StudentCloResult.objects.filter(framework=framework)
    if course_code:
        queryset = queryset.filter(course_code=course_code)

    counts = defaultdict(lambda: {'total': 0, 'achieved': 0, 'not_yet': 0})
    for course, clo, status in queryset.values_list('course_code', 'clo_code', 'status'):
        entry = counts[(course, clo)]
        entry['total'] += 1
        entry['achieved' if status == ACHIEVED else 'not_yet'] += 1

    return [
        {'course_code': course, 'clo_code': clo, **entry}
        for (course, clo), entry in sorted(counts.items())
    ]


def results_heatmap(framework, course_codes=None, columns=None):
    """Student x CLO matrix: 1 achieved, 0 not yet, None when no result exists."""
    queryset = StudentCloResult.objects.filter(framework=framework)
    if course_codes:
        queryset = queryset.filter(course_code__in=course_codes)
    latest = latest_results(queryset)

    course_names = dict(Course.objects.filter(framework=framework).values_list('course_code', 'course_name'))

    if columns:
        column_keys = [(c['course_code'], c['clo_code']) for c in columns if c.get('course_code') and c.get('clo_code')]
    else:
        column_keys = sorted({(course, clo) for (_, course, clo) in latest})

    mssvs = sorted({mssv for (mssv, _, _) in latest})
    names = dict(Student.objects.filter(mssv__in=mssvs).values_list('mssv', 'full_name'))

    values = []
    for mssv in mssvs:
        row = []
        for course, clo in column_keys:
            result = latest.get((mssv, course, clo))
            row.append(None if result is None else (1 if result.status == ACHIEVED else 0))
        values.append(row)

    return {
        'rows': [{'mssv': mssv, 'full_name': names.get(mssv, '')} for mssv in mssvs],
        'cols': [
            {
                'key': f"{course}|{clo}",
                'course_code': course,
                'clo_code': clo,
                'course_name': course_names.get(course, ''),
            }
            for course, clo in column_keys
        ],
        'values': values,
        'legend': {'achieved': 1, 'not_yet': 0, 'none': None},
    }


def class_heatmap(course_code, framework=None):
    queryset = StudentCloResult.objects.filter(course_code=course_code)
    if framework is not None:
        queryset = queryset.filter(framework=framework)
    latest = latest_results(queryset)

    per_clo = defaultdict(lambda: {'achieved': 0, 'not_yet': 0})
    for (_, _, clo_code), result in latest.items():
        per_clo[clo_code]['achieved' if result.status == ACHIEVED else 'not_yet'] += 1

    items = []
    for clo_code, counts in sorted(per_clo.items()):
        total = counts['achieved'] + counts['not_yet']
        items.append({
            'clo_code': clo_code,
            'achieved': counts['achieved'],
            'not_yet': counts['not_yet'],
            'total': total,
            'percent': percent(counts['achieved'], total),
        })
    return items


def pending_clos(framework, students, course_code=None):
    """(student, result) pairs whose latest result for a CLO is not yet achieved."""
    students = list(students)
    by_mssv = {student.mssv: student for student in students}
    queryset = StudentCloResult.objects.filter(framework=framework, mssv__in=list(by_mssv))
    if course_code:
        queryset = queryset.filter(course_code=course_code)

    pending = [
        (by_mssv[mssv], result)
        for (mssv, _, _), result in latest_results(queryset).items()
        if result.status == NOT_YET
    ]
    pending.sort(key=lambda pair: (pair[0].mssv, pair[1].course_code, pair[1].clo_code))
    return pending


def clo_texts(framework):
    return {
        (course, clo): text
        for course, clo, text in CLO.objects.filter(framework=framework).values_list('course_code', 'clo_code', 'clo_text')
    }
