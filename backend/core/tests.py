from django.test import SimpleTestCase

from core.exceptions import EngineError, InvalidInput, NotFound, UpstreamUnavailable


class EngineErrorTest(SimpleTestCase):

    def test_codes(self):
        self.assertEqual(NotFound().code, 'not_found')
        self.assertEqual(UpstreamUnavailable().code, 'upstream_unavailable')
        self.assertEqual(InvalidInput().code, 'invalid_input')
        for error_class in (NotFound, UpstreamUnavailable, InvalidInput):
            self.assertTrue(issubclass(error_class, EngineError))

    def test_as_dict(self):
        self.assertEqual(
            NotFound("Trip abc not found").as_dict(),
            {'error': 'Trip abc not found', 'code': 'not_found'},
        )

    def test_as_dict_with_details(self):
        error = UpstreamUnavailable("Places API rate limit exceeded", provider='google_places', retry_after=60)
        self.assertEqual(str(error), "Places API rate limit exceeded")
        self.assertEqual(error.as_dict()['details'], {'provider': 'google_places', 'retry_after': 60})
