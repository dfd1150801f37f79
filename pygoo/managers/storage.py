"""
pygoo - Cloud Storage Manager

Object and bucket metadata; object contents are not transferred.

https://cloud.google.com/storage/docs/json_api/v1
"""

from typing import Any, Dict, List

from pygoo.core.exceptions import StorageError
from pygoo.managers.base import BaseManager


class StorageManager(BaseManager):
    """Manages Google Cloud Storage buckets and objects."""

    error_class = StorageError

    def get_object(self, bucket_name: str, object_name: str) -> Dict[str, Any]:
        """Get the metadata of an object."""
        self.logger.debug(f"GetObject: bucket[{bucket_name}], object[{object_name}]")
        return self._execute(
            self.service.objects().get(bucket=bucket_name, object=object_name),
            'storage.objects.get', bucket=bucket_name, object=object_name
        )

    def list_objects_under_path(self, bucket_name: str, path: str) -> List[Dict[str, Any]]:
        """List all objects whose name starts with path."""
        self.logger.debug(f"ListObjectsUnderPath: bucket[{bucket_name}], path[{path}]")
        return list(self._paginate(
            self.service.objects(), 'storage.objects.list',
            bucket=bucket_name, prefix=path
        ))

    def list_files_under_path(self, bucket_name: str, path: str) -> List[Dict[str, Any]]:
        """
        List the files under path.

        Folder placeholders (zero-sized objects) are left out.
        """
        self.logger.debug(f"ListFilesUnderPath: bucket[{bucket_name}], path[{path}]")
        return [obj for obj in self.list_objects_under_path(bucket_name, path)
                if int(obj.get('size', 0)) > 0]

    def list_buckets(self, project_id: str) -> List[Dict[str, Any]]:
        return list(self._paginate(
            self.service.buckets(), 'storage.buckets.list', project=project_id
        ))
