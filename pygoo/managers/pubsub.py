"""
pygoo - Pub/Sub Manager

https://cloud.google.com/pubsub/docs/reference/rest/v1/projects.topics
"""

import base64
from typing import Any, Dict, List, Union

from pygoo.core.exceptions import PubSubError
from pygoo.managers.base import BaseManager

Message = Union[str, bytes, Dict[str, Any]]


def topic_path(project_id: str, topic: str) -> str:
    if topic.startswith('projects/'):
        return topic
    return f"projects/{project_id}/topics/{topic}"


def encode_message(message: Message) -> Dict[str, Any]:
    """Build a PubsubMessage from a payload or a {'data', 'attributes'} dict."""
    attributes = {}
    if isinstance(message, dict):
        attributes = message.get('attributes') or {}
        message = message.get('data', b'')

    if isinstance(message, str):
        message = message.encode('utf-8')

    encoded = {'data': base64.b64encode(message).decode('ascii')}
    if attributes:
        encoded['attributes'] = attributes
    return encoded


class PubSubManager(BaseManager):
    """Communicates with Google Cloud Pub/Sub topics."""

    error_class = PubSubError

    def list_topics(self, project_id: str) -> List[str]:
        """List the names of all topics under the project."""
        topics = self._paginate(
            self.service.projects().topics(), 'pubsub.topics.list',
            items_key='topics', project=f"projects/{project_id}"
        )
        return [topic['name'] for topic in topics]

    def get_topic(self, project_id: str, topic: str) -> Dict[str, Any]:
        name = topic_path(project_id, topic)
        return self._execute(
            self.service.projects().topics().get(topic=name),
            'pubsub.topics.get', topic=name
        )

    def create_topic(self, project_id: str, topic: str) -> Dict[str, Any]:
        name = topic_path(project_id, topic)
        self.logger.info(f"Creating topic {name}")
        return self._execute(
            self.service.projects().topics().create(name=name, body={}),
            'pubsub.topics.create', topic=name
        )

    def delete_topic(self, project_id: str, topic: str) -> None:
        name = topic_path(project_id, topic)
        self.logger.info(f"Deleting topic {name}")
        self._execute(
            self.service.projects().topics().delete(topic=name),
            'pubsub.topics.delete', topic=name
        )

    def publish(self, project_id: str, topic: str, messages: List[Message]) -> List[str]:
        """
        Publish messages to a topic.

        Args:
            messages: str/bytes payloads, or dicts with 'data' and 'attributes'

        Returns:
            Server-assigned message ids, in message order
        """
        name = topic_path(project_id, topic)
        body = {'messages': [encode_message(message) for message in messages]}

        response = self._execute(
            self.service.projects().topics().publish(topic=name, body=body),
            'pubsub.topics.publish', topic=name, messages=len(messages)
        )
        return response.get('messageIds', [])
