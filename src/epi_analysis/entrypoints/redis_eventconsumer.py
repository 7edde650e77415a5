"""Redis consumer for the epidemiological analysis service - listens to scheduler job requests."""

import json
import logging
import redis
import pydantic

import config
from epi_analysis.domain.exceptions import PersistenceError, ValidationError
from epi_analysis.entrypoints.jobs import JobRequest, init_database, run_job
from epi_analysis.service_layer.unit_of_work import SqlAlchemyUnitOfWork

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

JOBS_CHANNEL = "surveillance:jobs"

r = redis.Redis(**config.get_redis_host_and_port())


def main():
    """Main entry point for the job consumer."""
    logger.info("Epi analysis Redis pubsub consumer starting")
    init_database()

    pubsub = r.pubsub(ignore_subscribe_messages=True)
    pubsub.subscribe(JOBS_CHANNEL)

    logger.info(f"Subscribed to '{JOBS_CHANNEL}' channel, waiting for messages...")

    for m in pubsub.listen():
        handle_job_message(m)


def handle_job_message(m):
    """
    Handle one job request from Redis.

    The message data is a JSON object such as
    {"job": "scan", "date": "2024-03-01", "baseline_days": 60}.
    Invalid messages are logged and dropped; a failing job never stops the consumer.

    Args:
        m: Redis message dictionary

    Returns:
        The job result, or None when the message was dropped or the job failed
    """
    logger.info("Received message: %s", m)

    try:
        request = JobRequest.model_validate(json.loads(m["data"]))
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse JSON from message: {e}")
        return None
    except pydantic.ValidationError as e:
        logger.error(f"Dropping invalid job request: {e}")
        return None
    except Exception as e:  # pylint: disable=broad-except
        logger.error(f"Dropping unreadable job message: {e}", exc_info=True)
        return None

    try:
        result = run_job(request, SqlAlchemyUnitOfWork())
    except ValidationError as e:
        logger.error(f"Job {request.job} rejected: {e}")
        return None
    except PersistenceError as e:
        logger.error(f"Job {request.job} failed, store unavailable: {e}")
        return None
    except Exception as e:  # pylint: disable=broad-except
        logger.error(f"Error handling job request: {e}", exc_info=True)
        return None

    logger.info(f"Finished job {request.job}, result: {result}")
    return result


if __name__ == "__main__":
    main()
