import os
import unittest

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from tests.base import ApiTestCase, tour_payload
from tours_api.models.user import Role
from tours_api.services.tours import slugify

TOURS_URL = "/api/v1/tours"


def _body(**overrides) -> dict:
    data = tour_payload().model_dump(mode="json", by_alias=True)
    data.update(overrides)
    return data


class SlugifyTests(unittest.TestCase):
    def test_slugify(self):
        self.assertEqual(slugify("The Forest Hiker"), "the-forest-hiker")
        self.assertEqual(slugify("  Café & Crème Tour! "), "cafe-creme-tour")


class TourReadTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.seed_tours()

    def test_list_envelope(self):
        response = self.client.get(TOURS_URL)
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "success")
        self.assertEqual(body["results"], 8)
        first = body["data"]["tours"][0]
        self.assertIn("ratingsAverage", first)
        self.assertIn("startDates", first)
        self.assertNotIn("version", first)

    def test_list_with_filter_sort_and_pagination(self):
        response = self.client.get(
            TOURS_URL,
            params=[("difficulty", "easy"), ("price[lte]", "500"), ("sort", "-ratingsAverage"), ("limit", "5")],
        )
        self.assertEqual(response.status_code, 200)
        names = [tour["name"] for tour in response.json()["data"]["tours"]]
        self.assertEqual(names, ["The Northern Lights", "The Forest Hiker", "The Wine Taster"])

    def test_field_projection(self):
        response = self.client.get(TOURS_URL, params={"fields": "name,duration", "limit": "1"})
        self.assertEqual(set(response.json()["data"]["tours"][0]), {"id", "name", "duration"})

    def test_uncastable_filter_is_400(self):
        response = self.client.get(TOURS_URL, params={"price[gte]": "cheap"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["status"], "fail")

    def test_top_five_cheap_tours_alias(self):
        response = self.client.get(f"{TOURS_URL}/top-5-cheap-tours", params={"limit": "50", "sort": "name"})
        self.assertEqual(response.status_code, 200)
        tours = response.json()["data"]["tours"]
        self.assertEqual(
            [tour["name"] for tour in tours],
            ["The Northern Lights", "The Park Camper", "The Sea Explorer", "The Forest Hiker", "The City Wanderer"],
        )
        self.assertEqual(set(tours[0]), {"id", "name", "price", "ratingsAverage", "summary", "difficulty"})

    def test_tour_stats(self):
        response = self.client.get(f"{TOURS_URL}/tour-stats")
        self.assertEqual(response.status_code, 200)
        stats = response.json()["data"]["stats"]
        self.assertEqual(stats[0]["difficulty"], "EASY")
        self.assertEqual(stats[0]["numTours"], 4)
        self.assertEqual(stats[0]["minPrice"], 290)
        self.assertEqual(stats[0]["maxPrice"], 1197)
        self.assertAlmostEqual(stats[0]["avgPrice"], 595.25)
        self.assertEqual({row["difficulty"] for row in stats}, {"EASY", "MEDIUM", "DIFFICULT"})
        self.assertEqual(sum(row["numTours"] for row in stats), 7)

    def test_monthly_plan(self):
        response = self.client.get(f"{TOURS_URL}/monthly-plan/2021")
        self.assertEqual(response.status_code, 200)
        plan = response.json()["data"]["plan"]
        self.assertEqual(plan[0], {"month": 7, "numTourStarts": 2, "tours": ["The Forest Hiker", "The Sea Explorer"]})
        self.assertEqual([row["month"] for row in plan], [7, 4, 6, 10])

    def test_monthly_plan_includes_last_day_of_year(self):
        editor = self.create_user(email="lead@example.com", role=Role.LEAD_GUIDE)
        self.client.post(
            TOURS_URL,
            json=_body(name="The New Year Eve Tour", startDates=["2021-12-31T18:00:00Z"]),
            headers=self.auth_headers(editor),
        )
        plan = self.client.get(f"{TOURS_URL}/monthly-plan/2021").json()["data"]["plan"]
        self.assertIn({"month": 12, "numTourStarts": 1, "tours": ["The New Year Eve Tour"]}, plan)

    def test_get_one_and_bad_ids(self):
        tour_id = self.client.get(TOURS_URL, params={"limit": "1"}).json()["data"]["tours"][0]["id"]
        response = self.client.get(f"{TOURS_URL}/{tour_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["tour"]["id"], tour_id)

        missing = self.client.get(f"{TOURS_URL}/00000000-0000-0000-0000-000000000000")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["message"], "No tour found with that ID")

        malformed = self.client.get(f"{TOURS_URL}/not-an-id")
        self.assertEqual(malformed.status_code, 400)
        self.assertEqual(malformed.json()["message"], "Invalid id: not-an-id.")


class TourWriteTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.admin = self.create_user(email="admin@example.com", role=Role.ADMIN)
        self.headers = self.auth_headers(self.admin)

    def _create(self, **overrides):
        return self.client.post(TOURS_URL, json=_body(**overrides), headers=self.headers)

    def test_create_update_delete(self):
        created = self._create(name="The Mountain Walker", startDates=["2023-05-01T08:00:00Z"])
        self.assertEqual(created.status_code, 201, created.text)
        tour = created.json()["data"]["tour"]
        self.assertEqual(tour["slug"], "the-mountain-walker")
        self.assertEqual(len(tour["startDates"]), 1)

        patched = self.client.patch(
            f"{TOURS_URL}/{tour['id']}", json={"name": "The Valley Walker", "price": 650}, headers=self.headers
        )
        self.assertEqual(patched.status_code, 200, patched.text)
        self.assertEqual(patched.json()["data"]["tour"]["slug"], "the-valley-walker")
        self.assertEqual(patched.json()["data"]["tour"]["price"], 650)

        deleted = self.client.delete(f"{TOURS_URL}/{tour['id']}", headers=self.headers)
        self.assertEqual(deleted.status_code, 204)
        self.assertEqual(deleted.content, b"")
        self.assertEqual(self.client.get(f"{TOURS_URL}/{tour['id']}").status_code, 404)

    def test_duplicate_name_is_400(self):
        self.assertEqual(self._create(name="The Unique Name Tour").status_code, 201)
        response = self._create(name="The Unique Name Tour")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["status"], "fail")
        self.assertIn("name", response.json()["message"])

    def test_validation_errors_are_400(self):
        short = self._create(name="Short")
        self.assertEqual(short.status_code, 400)
        self.assertTrue(short.json()["message"].startswith("Invalid input data."))

        self.assertEqual(self._create(difficulty="extreme").status_code, 400)
        self.assertEqual(self._create(ratingsAverage=5.5).status_code, 400)

    def test_discount_must_be_below_price(self):
        response = self._create(price=300, priceDiscount=300)
        self.assertEqual(response.status_code, 400)
        self.assertIn("Discount price", response.json()["message"])

    def test_patch_discount_is_checked_against_stored_price(self):
        tour_id = self._create(price=300).json()["data"]["tour"]["id"]
        response = self.client.patch(f"{TOURS_URL}/{tour_id}", json={"priceDiscount": 400}, headers=self.headers)
        self.assertEqual(response.status_code, 400)

    def test_secret_tour_is_hidden_everywhere(self):
        tour_id = self._create(name="The Hidden Grotto Tour", secretTour=True, startDates=["2024-03-03T08:00:00Z"]).json()[
            "data"
        ]["tour"]["id"]
        self.assertEqual(self.client.get(TOURS_URL).json()["results"], 0)
        self.assertEqual(self.client.get(f"{TOURS_URL}/{tour_id}").status_code, 404)
        self.assertEqual(self.client.get(f"{TOURS_URL}/tour-stats").json()["data"]["stats"], [])
        self.assertEqual(self.client.get(f"{TOURS_URL}/monthly-plan/2024").json()["data"]["plan"], [])
        self.assertEqual(self.client.get(TOURS_URL, params={"secretTour": "true"}).json()["results"], 0)


if __name__ == "__main__":
    unittest.main()
