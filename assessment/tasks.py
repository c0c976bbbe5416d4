from celery import shared_task

from .models import Observation
from .services.rollup import compute_observation_clo_results

import logging

logger = logging.getLogger(__name__)


@shared_task
def recompute_framework_rollup(framework_id, rubric_id=None):
    """Re-run the CLO rollup for every submitted observation of a framework"""
    observations = Observation.objects.filter(
        status=Observation.STATUS_SUBMITTED,
        rubric__framework_id=framework_id,
    ).select_related('rubric', 'student', 'framework')
    if rubric_id is not None:
        observations = observations.filter(rubric_id=rubric_id)

    count = 0
    for observation in observations:
        try:
            compute_observation_clo_results(observation)
            count += 1
        except Exception as e:
            logger.error(f"Rollup failed for observation {observation.pk}: {str(e)}")
            raise
    logger.info(f"Recomputed rollup for {count} observation(s) in framework {framework_id}")
    return count
