# assessment/services/rollup.py
"""Turn rubric item scores into per-CLO results for the observed student."""
import logging
from collections import OrderedDict

from django.db import transaction

from curriculum.models import StudentCloResult
from monitoring.exceptions import ServiceError

from ..models import ObservationItemScore

logger = logging.getLogger(__name__)


def resolve_clo_ref(ref, default_course_code):
    """``"CLO1"`` uses the rubric's course; ``"IT101:CLO1"`` names it explicitly."""
    if ':' in ref:
        course_code, clo_code = ref.split(':', 1)
        return course_code.strip(), clo_code.strip()
    return default_course_code, ref.strip()


def build_item_scores(rubric, items):
    """Validate submitted items against the rubric and return unsaved score rows.

    Each item names a rubric row (``item_key`` or ``row_id``) and the chosen
    column (``selected_level``, by key or label). ``level_rank`` is the
    1-based position of that column.
    """
    if not isinstance(items, list):
        raise ServiceError('items must be an array')

    columns = rubric.columns
    row_ids = {row['id'] for row in rubric.rows}
    rank_by_level = {}
    for index, column in enumerate(columns):
        rank_by_level[column['key']] = (index + 1, column['label'])
        rank_by_level.setdefault(column['label'], (index + 1, column['label']))

    scores = []
    seen = set()
    for item in items:
        if not isinstance(item, dict):
            raise ServiceError('Each item must be an object')
        item_key = str(item.get('item_key') or item.get('row_id') or '')
        if item_key not in row_ids:
            raise ServiceError(f"Unknown rubric item '{item_key}'")
        if item_key in seen:
            raise ServiceError(f"Duplicate rubric item '{item_key}'")
        seen.add(item_key)

        selected = str(item.get('selected_level') or item.get('level_key') or '')
        if selected not in rank_by_level:
            raise ServiceError(f"Unknown level '{selected}' for item '{item_key}'")
        rank, label = rank_by_level[selected]

        scores.append(ObservationItemScore(
            item_key=item_key,
            selected_level=selected,
            level_rank=rank,
            level_label=label,
            score=item.get('score'),
            comment=str(item.get('comment') or ''),
        ))
    return scores


def save_item_scores(observation, scores):
    observation.items.all().delete()
    for score in scores:
        score.observation = observation
    ObservationItemScore.objects.bulk_create(scores)


def compute_observation_clo_results(observation):
    """Upsert one StudentCloResult per CLO referenced by the rubric rows.

    A CLO's score is the sum of level ranks over the rows mapped to it,
    divided by (mapped rows x rubric columns), as a percentage. The CLO is
    achieved when the score reaches the rubric threshold. Results this
    observation wrote earlier for CLOs the rubric no longer maps are removed.
    Each result is stamped with the observation's submission time so that
    recomputing never makes an older observation the latest one.
    """
    rubric = observation.rubric
    column_count = len(rubric.columns)
    ranks = {item.item_key: item.level_rank or 0 for item in observation.items.all()}

    observation.total_score = float(sum(ranks.values()))
    observation.save(update_fields=['total_score', 'updated_at'])

    if not column_count:
        discard_observation_results(observation)
        return []

    default_course = observation.course_code or rubric.course_code
    per_clo = OrderedDict()
    for row in rubric.rows:
        for ref in row['clo_ids']:
            key = resolve_clo_ref(ref, default_course)
            entry = per_clo.setdefault(key, [0, 0])
            entry[0] += ranks.get(row['id'], 0)
            entry[1] += 1

    framework = observation.framework or rubric.framework
    student = observation.student
    effective_at = observation.submitted_at or observation.observed_at
    results = []
    with transaction.atomic():
        for (course_code, clo_code), (rank_sum, row_count) in per_clo.items():
            pct = round(rank_sum * 100.0 / (row_count * column_count), 2)
            status = (
                StudentCloResult.STATUS_ACHIEVED if pct >= rubric.threshold
                else StudentCloResult.STATUS_NOT_YET
            )
            result, _ = StudentCloResult.objects.update_or_create(
                observation=observation,
                course_code=course_code,
                clo_code=clo_code,
                defaults={
                    'framework': framework,
                    'student': student,
                    'mssv': student.mssv,
                    'status': status,
                    'score': pct,
                    'source': 'observation',
                    'effective_at': effective_at,
                },
            )
            results.append(result)
        discard_observation_results(observation, keep=[result.pk for result in results])

    logger.info(f"Observation {observation.pk}: rolled up {len(results)} CLO results")
    return results


def discard_observation_results(observation, keep=()):
    """Delete the observation's CLO results other than ``keep``."""
    stale = StudentCloResult.objects.filter(observation=observation).exclude(pk__in=list(keep))
    deleted, _ = stale.delete()
    if deleted:
        logger.info(f"Observation {observation.pk}: removed {deleted} stale CLO results")
    return deleted
