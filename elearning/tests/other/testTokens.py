from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from elearning.tests.fakes import make_user

"""
    Tests for the JWT authentication: the access token is read from the
    access_token cookie first and from the Authorization header otherwise.
"""

ORDERS_URL = "/api/billing/orders/"


class TokenTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.user = make_user("testUser")
        cls.access_token = str(RefreshToken.for_user(cls.user).access_token)

    def setUp(self):
        self.client = APIClient()

    def testNoToken(self):
        response = self.client.get(ORDERS_URL)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def testCookieToken(self):
        self.client.cookies["access_token"] = self.access_token
        response = self.client.get(ORDERS_URL)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json(), [])

    def testBearerToken(self):
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {self.access_token}")
        response = self.client.get(ORDERS_URL)
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def testBadCookieToken(self):
        self.client.cookies["access_token"] = "bad token"
        response = self.client.get(ORDERS_URL)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
