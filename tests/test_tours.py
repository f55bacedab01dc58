"""
Tour route tests: CRUD, query features, aliases, aggregates and geo lookups.
"""

from tests.conftest import API, auth_header, set_role, tour_payload


# ============================================================================
# CRUD
# ============================================================================

def test_create_requires_login(client):
    response = client.post(f"{API}/tours", json={"name": "Nope"})
    assert response.status_code == 401


def test_create_requires_admin_or_lead_guide(client, user):
    response = client.post(f"{API}/tours", json={"name": "Nope"}, headers=auth_header(user["token"]))
    assert response.status_code == 403


def test_lead_guide_can_create(client, user):
    set_role(user["id"], "lead-guide")
    response = client.post(f"{API}/tours", json=tour_payload(name="Guide Tour"), headers=auth_header(user["token"]))
    assert response.status_code == 201


def test_create_and_get(client, create_tour):
    tour = create_tour()
    assert tour["rating"] == 4.5
    assert tour["start_dates"] == ["2021-04-25", "2021-07-20", "2021-10-05"]

    response = client.get(f"{API}/tours/{tour['id']}")
    assert response.status_code == 200
    body = response.json()["data"]["tour"]
    assert body["name"] == "The Forest Hiker"
    assert body["reviews"] == []


def test_create_validates_discount(client, admin):
    response = client.post(
        f"{API}/tours",
        json=tour_payload(price_discount=500),
        headers=auth_header(admin["token"]),
    )
    assert response.status_code == 400
    assert "Discount price must be lower than the price" in response.json()["message"]


def test_create_rejects_unknown_difficulty(client, admin):
    response = client.post(
        f"{API}/tours",
        json=tour_payload(difficulty="extreme"),
        headers=auth_header(admin["token"]),
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "difficulty"


def test_duplicate_tour_name(client, create_tour, admin):
    create_tour()
    response = client.post(f"{API}/tours", json=tour_payload(), headers=auth_header(admin["token"]))
    assert response.status_code == 400
    assert response.json()["message"].startswith("Duplicate field value")


def test_update_and_delete(client, create_tour, admin):
    tour = create_tour()
    headers = auth_header(admin["token"])

    response = client.patch(f"{API}/tours/{tour['id']}", json={"price": 450}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["tour"]["price"] == 450

    response = client.delete(f"{API}/tours/{tour['id']}", headers=headers)
    assert response.status_code == 204
    assert response.content == b""

    response = client.get(f"{API}/tours/{tour['id']}")
    assert response.status_code == 404
    body = response.json()
    assert body["status"] == "fail"
    assert body["message"] == "No tour found with that ID"


def test_update_with_nothing_to_change(client, create_tour, admin):
    tour = create_tour()
    response = client.patch(f"{API}/tours/{tour['id']}", json={}, headers=auth_header(admin["token"]))
    assert response.status_code == 400
    assert response.json()["message"] == "No valid fields provided to update"


# ============================================================================
# Listing
# ============================================================================

def test_list_filters_sorts_and_adds_weeks(client, create_tour):
    create_tour(name="Cheap Tour", price=100, duration=7)
    create_tour(name="Mid Tour", price=500)
    create_tour(name="Pricey Tour", price=2000)

    response = client.get(f"{API}/tours?price[gte]=400&sort=-price")
    assert response.status_code == 200
    body = response.json()
    assert body["results"] == 2
    assert [t["name"] for t in body["data"]["tours"]] == ["Pricey Tour", "Mid Tour"]

    weeks = client.get(f"{API}/tours?name=Cheap Tour").json()["data"]["tours"][0]["duration_in_weeks"]
    assert weeks == 1


def test_list_bad_sort_field(client):
    response = client.get(f"{API}/tours?sort=password")
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid sort field: password"


def test_list_bad_numeric_filter(client):
    response = client.get(f"{API}/tours?duration[gte]=five")
    assert response.status_code == 400


def test_top_cheap_alias(client, create_tour, admin):
    create_tour(name="Tour A", price=300)
    create_tour(name="Tour B", price=200)
    create_tour(name="Tour C", price=100)

    response = client.get(f"{API}/tours/top-2-cheap")
    assert response.status_code == 200
    tours = response.json()["data"]["tours"]
    # equal ratings, so cheapest first
    assert [t["name"] for t in tours] == ["Tour C", "Tour B"]
    assert set(tours[0]) == {"id", "name", "price", "rating", "difficulty"}


# ============================================================================
# Aggregates
# ============================================================================

def test_tour_stats(client, create_tour):
    create_tour(name="Easy One", difficulty="easy", price=100)
    create_tour(name="Easy Two", difficulty="easy", price=300)
    create_tour(name="Hard One", difficulty="difficult", price=1000)

    response = client.get(f"{API}/tours/tour-stats")
    assert response.status_code == 200
    stats = {row["difficulty"]: row for row in response.json()["data"]}
    assert stats["easy"]["total_tours"] == 2
    assert stats["easy"]["avg_price"] == 200
    assert stats["easy"]["min_price"] == 100
    assert stats["difficult"]["max_price"] == 1000


def test_monthly_plan(client, create_tour, admin):
    create_tour(name="Spring Tour", start_dates=["2021-04-25", "2021-07-20"])
    create_tour(name="Summer Tour", start_dates=["2021-07-01", "2022-07-01"])

    response = client.get(f"{API}/tours/monthly-plan/2021", headers=auth_header(admin["token"]))
    assert response.status_code == 200
    plan = response.json()["data"]
    assert plan[0] == {"month": 7, "num_tour_starts": 2, "tours": ["Spring Tour", "Summer Tour"]}
    assert plan[1]["month"] == 4
    assert len(plan) == 2


def test_monthly_plan_requires_staff(client, user):
    response = client.get(f"{API}/tours/monthly-plan/2021", headers=auth_header(user["token"]))
    assert response.status_code == 403


# ============================================================================
# Geo
# ============================================================================

def test_tours_within_and_distances(client, create_tour):
    # Banff and Miami
    create_tour(name="Banff Tour", start_location_coordinates=[-115.570154, 51.178456])
    create_tour(name="Miami Tour", start_location_coordinates=[-80.185942, 25.774772])

    # Los Angeles
    response = client.get(f"{API}/tours/tours-within/2000/center/34.111745,-118.113491/unit/mi")
    assert response.status_code == 200
    assert [t["name"] for t in response.json()["data"]["tours"]] == ["Banff Tour"]

    response = client.get(f"{API}/tours/distances/34.111745,-118.113491/unit/km")
    assert response.status_code == 200
    distances = response.json()["data"]["data"]
    assert [d["name"] for d in distances] == ["Banff Tour", "Miami Tour"]
    assert 1800 < distances[0]["distance"] < 2000


def test_geo_rejects_bad_input(client):
    assert client.get(f"{API}/tours/distances/abc/unit/km").status_code == 400
    assert client.get(f"{API}/tours/distances/34.1,-118.1/unit/parsecs").status_code == 400


# ============================================================================
# App-level behavior
# ============================================================================

def test_unknown_route(client):
    response = client.get(f"{API}/nothing-here")
    assert response.status_code == 404
    assert response.json()["message"] == f"Can't find {API}/nothing-here on this server!"


def test_health(client, create_tour):
    create_tour()
    response = client.get(f"{API}/health")
    assert response.status_code == 200
    assert response.json()["tours"] == 1
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_list_bad_float_filter(client, create_tour):
    create_tour()
    response = client.get(f"{API}/tours?price[gte]=abc")
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid value for price: abc"


def test_list_negative_page_and_limit(client, create_tour):
    create_tour(name="Tour One")
    create_tour(name="Tour Two")

    response = client.get(f"{API}/tours?page=-2&limit=-5")
    assert response.status_code == 200
    body = response.json()
    assert body["results"] == 1
    assert body["data"]["tours"][0]["name"] == "Tour One"


def test_list_huge_page_is_not_a_server_error(client, create_tour):
    create_tour()
    response = client.get(f"{API}/tours?page=99999999999999999999")
    assert response.status_code == 404
    assert response.json()["message"] == "This page does not exist"
