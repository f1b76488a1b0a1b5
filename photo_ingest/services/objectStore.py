import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError
from ..errors import StorageError, ObjectNotFoundError
from ..utils.logging import logger

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class ObjectStore:
    """S3-compatible bucket.

    Transfers go through pre-signed URLs; their validity window doubles as the
    transfer timeout. Deletes go through the API client and are idempotent.
    """

    def __init__(self, client, bucket, presign_expiry=600, http=None):
        self._client = client
        self._bucket = bucket
        self._expiry = presign_expiry
        self._http = http or requests.Session()

    @classmethod
    def from_config(cls, config):
        client = boto3.client(
            "s3",
            endpoint_url=config.get("S3_ENDPOINT_URL"),
            region_name=config.get("S3_REGION"),
            aws_access_key_id=config.get("S3_ACCESS_KEY"),
            aws_secret_access_key=config.get("S3_SECRET_KEY"),
        )
        return cls(client, config["S3_BUCKET"], presign_expiry=config["PRESIGN_EXPIRY_SECONDS"])

    @property
    def bucket(self):
        return self._bucket

    def presign_put(self, key, content_type=None):
        params = {"Bucket": self._bucket, "Key": key}
        if content_type:
            params["ContentType"] = content_type
        return self._presign("put_object", params)

    def presign_get(self, key):
        return self._presign("get_object", {"Bucket": self._bucket, "Key": key})

    def _presign(self, operation, params):
        try:
            return self._client.generate_presigned_url(operation, Params=params, ExpiresIn=self._expiry)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Could not presign {operation} for {params['Key']}: {e}") from e

    def put(self, key, data, content_type="application/octet-stream"):
        url = self.presign_put(key, content_type)
        try:
            response = self._http.put(url, data=data, headers={"Content-Type": content_type}, timeout=self._expiry)
        except requests.RequestException as e:
            raise StorageError(f"Upload of {key} failed: {e}") from e
        if response.status_code >= 300:
            raise StorageError(f"Upload of {key} rejected: {response.status_code} {response.text[:200]}")
        logger.debug(f"Uploaded {key} ({len(data)} bytes)")

    def get(self, key):
        url = self.presign_get(key)
        try:
            response = self._http.get(url, timeout=self._expiry)
        except requests.RequestException as e:
            raise StorageError(f"Download of {key} failed: {e}") from e
        if response.status_code == 404:
            raise ObjectNotFoundError(f"Object {key} not found")
        if response.status_code >= 300:
            raise StorageError(f"Download of {key} rejected: {response.status_code} {response.text[:200]}")
        return response.content

    def delete(self, key):
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(f"Object {key} not found") from e
            raise StorageError(f"Delete of {key} failed: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Delete of {key} failed: {e}") from e
