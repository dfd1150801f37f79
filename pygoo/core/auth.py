"""
pygoo - Authentication Manager

This module handles Google Cloud authentication and discovery client
creation for every manager.
"""

import google.auth
from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from googleapiclient import discovery
import googleapiclient.http
import google_auth_httplib2
import httplib2

from pygoo.core.exceptions import AuthenticationError
from pygoo.core.config import VERSION

TOKEN_URI = 'https://oauth2.googleapis.com/token'

_SCOPE_PREFIX = 'https://www.googleapis.com/auth/'

COMPUTE_SCOPES = [_SCOPE_PREFIX + 'compute']
DATASTORE_SCOPES = [_SCOPE_PREFIX + 'datastore']
MONITORING_SCOPES = [_SCOPE_PREFIX + 'monitoring', _SCOPE_PREFIX + 'cloud-platform']
SQLADMIN_SCOPES = [_SCOPE_PREFIX + 'sqlservice.admin']
PUBSUB_SCOPES = [_SCOPE_PREFIX + 'cloud-platform', _SCOPE_PREFIX + 'pubsub']
STORAGE_SCOPES = [
    _SCOPE_PREFIX + 'devstorage.full_control',
    _SCOPE_PREFIX + 'devstorage.read_write',
]


class AuthManager:
    """
    Manages Google Cloud authentication and API client creation.

    Credentials come from, in order:
    1. A service account e-mail plus its PEM private key
    2. A service account JSON key file
    3. Application Default Credentials (ADC)

    Usage:
        auth = AuthManager(service_account=email, private_key=pem)
        compute = auth.build_service('compute', 'v1', COMPUTE_SCOPES)
    """

    def __init__(self, service_account=None, private_key=None, key_file=None, project=None):
        """
        Args:
            service_account: Service account e-mail
            private_key: PEM private key of the service account (bytes or str)
            key_file: Path to a service account JSON key file
            project: GCP project ID (optional, falls back to the credentials' project)
        """
        self.service_account = service_account
        self.private_key = private_key
        self.key_file = key_file
        self._project = project
        self._services = {}

    @classmethod
    def from_app_context(cls, ctx):
        """Build an AuthManager from an AppContext."""
        return cls(
            service_account=ctx.service_account,
            private_key=ctx.key_of_service_account,
            key_file=ctx.key_file,
            project=ctx.project_id
        )

    def get_credentials(self, scopes):
        """
        Get and validate Google Cloud credentials for the given scopes.

        Returns:
            tuple: (credentials, project_id)

        Raises:
            AuthenticationError: If credentials not found or invalid
        """

        if self.service_account and self.private_key:
            key = self.private_key
            if isinstance(key, bytes):
                key = key.decode('utf-8')

            info = {
                'type': 'service_account',
                'client_email': self.service_account,
                'private_key': key,
                'token_uri': TOKEN_URI,
            }
            if self._project:
                info['project_id'] = self._project

            try:
                credentials = service_account.Credentials.from_service_account_info(
                    info, scopes=scopes
                )
            except (ValueError, GoogleAuthError) as e:
                raise AuthenticationError(
                    f"Invalid service account key: {e}",
                    fix="Check the private key of the service account"
                ) from e
            return credentials, self._project

        if self.key_file:
            try:
                credentials = service_account.Credentials.from_service_account_file(
                    self.key_file, scopes=scopes
                )
            except (OSError, ValueError, GoogleAuthError) as e:
                raise AuthenticationError(
                    f"Cannot load key file {self.key_file}: {e}",
                    fix="gcloud iam service-accounts keys create"
                ) from e
            return credentials, self._project or credentials.project_id

        try:
            credentials, project = google.auth.default(scopes=scopes)
        except DefaultCredentialsError as e:
            raise AuthenticationError(
                "No credentials found. You need to authenticate first.",
                fix="gcloud auth application-default login"
            ) from e

        if credentials.expired and getattr(credentials, 'refresh_token', None):
            try:
                credentials.refresh(Request())
            except GoogleAuthError as e:
                raise AuthenticationError(
                    "Credentials expired and refresh failed",
                    fix="gcloud auth application-default login"
                ) from e

        return credentials, self._project or project

    def build_service(self, api, version, scopes):
        """
        Get an authenticated discovery client. Clients are cached per (api, version).

        Example:
            compute = auth.build_service('compute', 'v1', COMPUTE_SCOPES)
            vm = compute.instances().get(
                project='my-project', zone='us-central1-a', instance='my-vm'
            ).execute()
        """
        cache_key = (api, version)
        if cache_key in self._services:
            return self._services[cache_key]

        credentials, project = self.get_credentials(scopes)
        if not self._project:
            self._project = project

        # httplib2.Http isn't thread safe, so every request gets its own
        def _request_builder(http, *args, **kwargs):
            headers = kwargs.setdefault('headers', {})
            headers['user-agent'] = f'pygoo-{VERSION}'
            auth_http = google_auth_httplib2.AuthorizedHttp(
                credentials,
                http=httplib2.Http()
            )
            return googleapiclient.http.HttpRequest(auth_http, *args, **kwargs)

        try:
            service = discovery.build(
                api,
                version,
                credentials=credentials,
                cache_discovery=False,
                requestBuilder=_request_builder
            )
        except Exception as e:
            raise AuthenticationError(
                f"Failed to create {api} {version} API client: {str(e)}"
            ) from e

        self._services[cache_key] = service
        return service

    def get_project(self):
        """
        Get the current GCP project ID.

        Returns:
            str: Configured project, or the one reported by the credentials
        """
        if not self._project:
            _, self._project = self.get_credentials(None)

        return self._project
