import json
import logging

from app.schemas.pregeneration import SlideSummaryChainPayload
from app.services.pregeneration.job_chain import JobChain
from app.utils.config import Settings
from app.utils.singleton import singleton

settings = Settings()

PUBLISHER_SINGLETON = "pubsub_publisher"


def _create_publisher():
    from google.cloud import pubsub_v1

    if settings.pubsub_emulator_host:
        return pubsub_v1.PublisherClient(
            client_options={"api_endpoint": settings.pubsub_emulator_host}
        )
    return pubsub_v1.PublisherClient()


def get_publisher():
    """Lazy initialization of the Pub/Sub publisher client."""
    return singleton(PUBLISHER_SINGLETON, _create_publisher)


def _publish_message(topic_name: str, data: dict) -> None:
    """Helper function to publish a message to a Pub/Sub topic."""
    if not settings.gcp_project_id:
        raise ValueError("GCP_PROJECT_ID is not set. Cannot publish message.")

    publisher = get_publisher()
    topic_path = publisher.topic_path(settings.gcp_project_id, topic_name)
    message_data = json.dumps(data).encode("utf-8")

    try:
        future = publisher.publish(topic_path, message_data)
        future.result()  # Wait for the message to be published
    except Exception as e:
        logging.error(f"Failed to publish message to {topic_path}: {e}")
        raise


def publish_slide_summary_chain(chain: JobChain) -> None:
    """Publishes a pre-generation chain to the slide summary topic."""
    payload = SlideSummaryChainPayload(
        lecture_id=chain.lecture_id, slide_numbers=chain.slide_numbers
    )
    _publish_message(settings.slide_summary_topic, payload.model_dump(mode="json"))
    logging.info(
        f"Published slide summary chain {chain.slide_numbers} for lecture {chain.lecture_id}"
    )
