"""
Review route tests, including tour rating upkeep.
"""

from tests.conftest import API, auth_header, signup


def post_review(client, token, tour_id, rating, text="Great tour!"):
    return client.post(
        f"{API}/tours/{tour_id}/reviews",
        json={"review": text, "rating": rating},
        headers=auth_header(token),
    )


def get_tour(client, tour_id):
    return client.get(f"{API}/tours/{tour_id}").json()["data"]["tour"]


def test_reviews_require_login(client):
    assert client.get(f"{API}/reviews").status_code == 401


def test_nested_create_takes_tour_from_path_and_user_from_token(client, user, create_tour):
    tour = create_tour()

    response = post_review(client, user["token"], tour["id"], 4)
    assert response.status_code == 201
    review = response.json()["data"]["review"]
    assert review["tour_id"] == tour["id"]
    assert review["user_id"] == user["id"]


def test_create_without_tour(client, user):
    response = client.post(
        f"{API}/reviews",
        json={"review": "Where am I?", "rating": 3},
        headers=auth_header(user["token"]),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "A review must belong to a tour."


def test_rating_out_of_range(client, user, create_tour):
    tour = create_tour()
    response = post_review(client, user["token"], tour["id"], 6)
    assert response.status_code == 400


def test_one_review_per_user_per_tour(client, user, create_tour):
    tour = create_tour()
    assert post_review(client, user["token"], tour["id"], 4).status_code == 201

    response = post_review(client, user["token"], tour["id"], 5)
    assert response.status_code == 400
    assert response.json()["message"].startswith("Duplicate field value")


def test_ratings_follow_reviews(client, user, create_tour):
    tour = create_tour()
    other = signup(client, name="Sophie", email="sophie@example.com")

    post_review(client, user["token"], tour["id"], 4)
    second = post_review(client, other["token"], tour["id"], 5).json()["data"]["review"]

    updated = get_tour(client, tour["id"])
    assert updated["ratings_quantity"] == 2
    assert updated["rating"] == 4.5

    response = client.patch(
        f"{API}/reviews/{second['id']}",
        json={"rating": 2},
        headers=auth_header(other["token"]),
    )
    assert response.status_code == 200
    assert get_tour(client, tour["id"])["rating"] == 3

    response = client.delete(f"{API}/reviews/{second['id']}", headers=auth_header(other["token"]))
    assert response.status_code == 204
    updated = get_tour(client, tour["id"])
    assert updated["ratings_quantity"] == 1
    assert updated["rating"] == 4


def test_rating_resets_when_last_review_goes(client, user, create_tour):
    tour = create_tour()
    review = post_review(client, user["token"], tour["id"], 1).json()["data"]["review"]
    assert get_tour(client, tour["id"])["rating"] == 1

    client.delete(f"{API}/reviews/{review['id']}", headers=auth_header(user["token"]))
    updated = get_tour(client, tour["id"])
    assert updated["rating"] == 4.5
    assert updated["ratings_quantity"] == 0


def test_list_nested_and_flat(client, user, create_tour):
    first = create_tour(name="First Tour")
    second = create_tour(name="Second Tour")
    post_review(client, user["token"], first["id"], 5, text="Loved it")
    post_review(client, user["token"], second["id"], 3, text="It was ok")

    headers = auth_header(user["token"])
    all_reviews = client.get(f"{API}/reviews", headers=headers).json()
    assert all_reviews["results"] == 2

    nested = client.get(f"{API}/tours/{first['id']}/reviews", headers=headers).json()
    assert nested["results"] == 1
    assert nested["data"]["reviews"][0]["review"] == "Loved it"
    assert nested["data"]["reviews"][0]["user_name"] == "Laura"


def test_tour_detail_embeds_reviews(client, user, create_tour):
    tour = create_tour()
    post_review(client, user["token"], tour["id"], 5, text="Amazing")

    reviews = get_tour(client, tour["id"])["reviews"]
    assert [r["review"] for r in reviews] == ["Amazing"]
    assert reviews[0]["user_photo"] == "default.jpg"


def test_missing_review(client, user):
    response = client.get(f"{API}/reviews/999", headers=auth_header(user["token"]))
    assert response.status_code == 404
    assert response.json()["message"] == "No review found with that ID"
