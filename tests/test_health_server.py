import unittest

from fastapi.testclient import TestClient

from otp_relay.modules.health_server import HEALTH_RESPONSE, STATUS_RESPONSE, create_app


class TestHealthEndpoint(unittest.TestCase):

    def setUp(self):
        self.client = TestClient(create_app())

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, HEALTH_RESPONSE)

    def test_healthz(self):
        self.assertEqual(self.client.get("/healthz").text, "OK")

    def test_other_paths_return_status(self):
        for path in ("/", "/status", "/anything/else"):
            with self.subTest(path=path):
                response = self.client.get(path)
                self.assertEqual(response.status_code, 200)
                self.assertEqual(response.text, STATUS_RESPONSE)


if __name__ == '__main__':
    unittest.main()
