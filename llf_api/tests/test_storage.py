import tempfile
from pathlib import Path
from unittest import TestCase, mock

from botocore.exceptions import ClientError

from llf_api.config import default_platform_config
from llf_api.engine.errors import StorageError
from llf_api.storage import StorageProviderRegistry, split_reference, validate_platform_config


def _s3_config(**extra):
    return {
        "storage": {
            "primary": {"name": "evidence"},
            "providers": [
                {"name": "evidence", "type": "s3", "s3": {"bucket": "llf-evidence", "region": "us-east-1", **extra}},
            ],
        }
    }


class LocalStorageTests(TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.base = Path(self._tmp.name)
        config = {
            "storage": {
                "primary": {"name": "local"},
                "providers": [{"name": "local", "type": "local", "local": {"base_path": str(self.base)}}],
            }
        }
        self.registry = StorageProviderRegistry(config)

    def test_upload_writes_under_base_path_and_returns_reference(self):
        reference = self.registry.upload("inspection_images/abc 123", b"jpeg-bytes", "image/jpeg")
        self.assertEqual(reference, "local://inspection_images/abc-123")
        self.assertEqual((self.base / "inspection_images" / "abc-123").read_bytes(), b"jpeg-bytes")
        self.assertEqual(self.registry.resolve_url(reference), str(self.base / "inspection_images" / "abc-123"))

    def test_path_hint_cannot_escape_base_path(self):
        reference = self.registry.upload("../../etc/passwd", b"x", "text/plain")
        self.assertEqual(reference, "local://etc/passwd")
        self.assertTrue((self.base / "etc" / "passwd").exists())

    def test_delete_removes_file_and_tolerates_missing(self):
        reference = self.registry.upload("machine_images/m1", b"png", "image/png")
        self.registry.delete(reference)
        self.assertFalse((self.base / "machine_images" / "m1").exists())
        self.registry.delete(reference)

    def test_unknown_provider_and_malformed_reference(self):
        with self.assertRaises(StorageError):
            self.registry.delete("gcs://bucket/key")
        with self.assertRaises(StorageError):
            split_reference("no-scheme")

    def test_write_failure_is_a_storage_error(self):
        blocker = self.base / "machine_images"
        blocker.write_bytes(b"not a directory")
        with self.assertRaises(StorageError):
            self.registry.upload("machine_images/m2", b"png", "image/png")

    def test_public_base_url(self):
        config = {
            "storage": {
                "providers": [
                    {"name": "cdn", "type": "local", "local": {"base_path": str(self.base), "public_base_url": "https://cdn.test/u/"}}
                ]
            }
        }
        registry = StorageProviderRegistry(config)
        reference = registry.upload("machine_images/m3", b"png", "image/png")
        self.assertEqual(reference, "cdn://machine_images/m3")
        self.assertEqual(registry.resolve_url(reference), "https://cdn.test/u/machine_images/m3")


class StorageConfigTests(TestCase):
    def test_default_config_uses_local_path_from_env(self):
        with mock.patch.dict("os.environ", {"LLF_UPLOADS_LOCAL_PATH": "/srv/llf"}):
            config = default_platform_config()
        validate_platform_config(config)
        self.assertEqual(config["storage"]["providers"][0]["local"]["base_path"], "/srv/llf")

    def test_invalid_provider_type_is_rejected(self):
        config = {"storage": {"providers": [{"name": "x", "type": "ftp"}]}}
        with self.assertRaises(StorageError) as ctx:
            StorageProviderRegistry(config)
        self.assertIn("storage/providers/0/type", ctx.exception.message)


class S3StorageTests(TestCase):
    @mock.patch("llf_api.storage.providers.s3.boto3.client")
    def test_upload_puts_object_with_prefix_and_kms(self, mock_boto_client):
        mock_s3 = mock.Mock()
        mock_boto_client.return_value = mock_s3
        registry = StorageProviderRegistry(_s3_config(prefix="plant-7", kms_key_id="kms-1"))

        reference = registry.upload("resolution_images/r1", b"data", "image/png")

        self.assertEqual(reference, "evidence://resolution_images/r1")
        mock_boto_client.assert_called_once_with("s3", region_name="us-east-1")
        mock_s3.put_object.assert_called_once_with(
            Bucket="llf-evidence",
            Key="plant-7/resolution_images/r1",
            Body=b"data",
            ACL="private",
            ContentType="image/png",
            ServerSideEncryption="aws:kms",
            SSEKMSKeyId="kms-1",
        )

    @mock.patch("llf_api.storage.providers.s3.boto3.client")
    def test_resolve_presigns_and_delete_removes_object(self, mock_boto_client):
        mock_s3 = mock.Mock()
        mock_s3.generate_presigned_url.return_value = "https://signed.example/obj"
        mock_boto_client.return_value = mock_s3
        registry = StorageProviderRegistry(_s3_config())

        self.assertEqual(registry.resolve_url("evidence://machine_images/m1"), "https://signed.example/obj")
        mock_s3.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "llf-evidence", "Key": "llf/machine_images/m1"},
            ExpiresIn=86400,
        )
        registry.delete("evidence://machine_images/m1")
        mock_s3.delete_object.assert_called_once_with(Bucket="llf-evidence", Key="llf/machine_images/m1")

    @mock.patch("llf_api.storage.providers.s3.boto3.client")
    def test_client_errors_become_storage_errors(self, mock_boto_client):
        mock_s3 = mock.Mock()
        mock_s3.put_object.side_effect = ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject")
        mock_boto_client.return_value = mock_s3
        registry = StorageProviderRegistry(_s3_config())
        with self.assertRaises(StorageError):
            registry.upload("inspection_images/i1", b"data", "image/jpeg")
