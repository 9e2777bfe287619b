from csrf import generate_csrf_token, validate_csrf_token


def _food(client) -> dict:
    return client.post(
        "/api/categories", json={"name": "Food", "type": "EXPENSE", "budget": 100}
    ).json()


def test_csrf_tokens_validate() -> None:
    assert validate_csrf_token(generate_csrf_token())
    assert not validate_csrf_token("")
    assert not validate_csrf_token("forged.token")


def test_pages_render(client) -> None:
    food = _food(client)
    client.post(
        "/api/transactions", json={"title": "Lunch", "amount": 45, "categoryId": food["id"]}
    )

    for path, heading in (
        ("/", "Dashboard"),
        ("/transactions", "Transactions"),
        ("/categories", "Categories"),
        ("/goals", "Savings goals"),
        ("/flow?period=all", "Money flow"),
    ):
        response = client.get(path)
        assert response.status_code == 200, path
        assert f"<h1>{heading}</h1>" in response.text
    assert "Lunch" in client.get("/transactions").text


def test_unknown_page_renders_html_404(client) -> None:
    response = client.get("/nowhere")

    assert response.status_code == 404
    assert "Page not found" in response.text
    assert client.get("/api/nowhere").json()["message"] == "Not Found"


def test_transaction_form_creates_and_redirects(client) -> None:
    food = _food(client)

    response = client.post(
        "/transactions",
        data={
            "csrf_token": generate_csrf_token(),
            "title": "Groceries",
            "amount": "23,50",
            "category_id": str(food["id"]),
            "date": "2025-03-04",
        },
        follow_redirects=False,
    )

    assert response.status_code == 303
    [txn] = client.get("/api/transactions").json()
    assert txn["amount"] == 23.5
    assert txn["type"] == "EXPENSE"


def test_transaction_form_shows_errors_inline(client) -> None:
    food = _food(client)

    response = client.post(
        "/transactions",
        data={
            "csrf_token": generate_csrf_token(),
            "title": "Free",
            "amount": "0",
            "category_id": str(food["id"]),
        },
    )

    assert response.status_code == 400
    assert "Amount must be greater than zero" in response.text


def test_forms_require_csrf_token(client) -> None:
    response = client.post("/categories", data={"name": "Rent", "type": "EXPENSE"})

    assert response.status_code == 400
    assert "Invalid CSRF token" in response.text
    assert client.get("/api/categories").json() == []


def test_duplicate_category_form_is_409(client) -> None:
    _food(client)

    response = client.post(
        "/categories",
        data={"csrf_token": generate_csrf_token(), "name": "food", "type": "EXPENSE"},
    )

    assert response.status_code == 409
    assert "A category with this name already exists" in response.text


def test_goal_form_enforces_allocation_cap(client) -> None:
    response = client.post(
        "/goals",
        data={
            "csrf_token": generate_csrf_token(),
            "name": "Trip",
            "target_amount": "1000",
            "current_amount": "50",
        },
    )

    assert response.status_code == 400
    assert "Allocation limit exceeded" in response.text
    assert client.get("/api/goals").json() == []


def test_delete_forms(client) -> None:
    food = _food(client)
    goal = client.post("/api/goals", json={"name": "Trip", "targetAmount": 100}).json()
    token = generate_csrf_token()

    client.post(f"/goals/{goal['id']}/delete", data={"csrf_token": token})
    client.post(f"/categories/{food['id']}/delete", data={"csrf_token": token})

    assert client.get("/api/goals").json() == []
    assert client.get("/api/categories").json() == []


def test_delete_form_with_bad_token_rerenders_page(client) -> None:
    food = _food(client)

    response = client.post(f"/categories/{food['id']}/delete", data={"csrf_token": "x"})

    assert response.status_code == 400
    assert response.headers["content-type"].startswith("text/html")
    assert "Invalid CSRF token" in response.text
    assert len(client.get("/api/categories").json()) == 1


def test_transaction_edit_form_follows_new_category_type(client) -> None:
    food = _food(client)
    pay = client.post("/api/categories", json={"name": "Pay", "type": "INCOME"}).json()
    txn = client.post(
        "/api/transactions", json={"title": "Lunch", "amount": 12, "categoryId": food["id"]}
    ).json()

    assert f'action="/transactions/{txn["id"]}"' in client.get("/transactions").text
    response = client.post(
        f"/transactions/{txn['id']}",
        data={
            "csrf_token": generate_csrf_token(),
            "title": "Salary",
            "amount": "2000",
            "category_id": str(pay["id"]),
            "date": "2025-03-01",
        },
        follow_redirects=False,
    )

    assert response.status_code == 303
    updated = client.get(f"/api/transactions/{txn['id']}").json()
    assert updated["title"] == "Salary"
    assert updated["amount"] == 2000
    assert updated["type"] == "INCOME"
    assert updated["date"] == "2025-03-01"


def test_transaction_edit_form_rejects_sub_cent_amount(client) -> None:
    food = _food(client)
    txn = client.post(
        "/api/transactions", json={"title": "Lunch", "amount": 12, "categoryId": food["id"]}
    ).json()

    response = client.post(
        f"/transactions/{txn['id']}",
        data={
            "csrf_token": generate_csrf_token(),
            "title": "Lunch",
            "amount": "0.001",
            "category_id": str(food["id"]),
        },
    )

    assert response.status_code == 400
    assert "Amount must be greater than zero" in response.text
    assert client.get(f"/api/transactions/{txn['id']}").json()["amount"] == 12


def test_category_edit_form_renames_and_clears_budget(client) -> None:
    food = _food(client)
    rent = client.post("/api/categories", json={"name": "Rent", "type": "EXPENSE"}).json()
    token = generate_csrf_token()

    response = client.post(
        f"/categories/{food['id']}",
        data={
            "csrf_token": token,
            "name": "Groceries",
            "type": "EXPENSE",
            "color": "#ff0000",
            "budget": "",
        },
        follow_redirects=False,
    )

    assert response.status_code == 303
    updated = client.get(f"/api/categories/{food['id']}").json()
    assert updated["name"] == "Groceries"
    assert updated["color"] == "#ff0000"
    assert updated["budget"] is None

    response = client.post(
        f"/categories/{rent['id']}",
        data={"csrf_token": token, "name": "groceries", "type": "EXPENSE", "color": "#000000"},
    )

    assert response.status_code == 409
    assert "A category with this name already exists" in response.text
    assert client.get(f"/api/categories/{rent['id']}").json()["name"] == "Rent"


def test_category_form_maps_unique_constraint_race_to_409(client, monkeypatch) -> None:
    import repositories

    _food(client)
    # lookup misses, as when another request inserts between check and commit
    monkeypatch.setattr(
        repositories.CategoryRepository, "find_by_name", lambda self, *a, **kw: None
    )

    response = client.post(
        "/categories",
        data={"csrf_token": generate_csrf_token(), "name": "Food", "type": "EXPENSE"},
    )

    assert response.status_code == 409
    assert "A category with this name already exists" in response.text
    assert [c["name"] for c in client.get("/api/categories").json()] == ["Food"]


def test_goal_edit_form_excludes_own_allocation(client) -> None:
    pay = client.post("/api/categories", json={"name": "Pay", "type": "INCOME"}).json()
    client.post(
        "/api/transactions", json={"title": "Salary", "amount": 500, "categoryId": pay["id"]}
    )
    goal = client.post(
        "/api/goals", json={"name": "Trip", "targetAmount": 1000, "currentAmount": 300}
    ).json()
    token = generate_csrf_token()
    fields = {"csrf_token": token, "name": "Trip", "target_amount": "1000", "deadline": ""}

    response = client.post(
        f"/goals/{goal['id']}",
        data={**fields, "current_amount": "500"},
        follow_redirects=False,
    )

    assert response.status_code == 303
    assert client.get(f"/api/goals/{goal['id']}").json()["currentAmount"] == 500

    response = client.post(f"/goals/{goal['id']}", data={**fields, "current_amount": "501"})

    assert response.status_code == 400
    assert "Allocation limit exceeded" in response.text
    assert client.get(f"/api/goals/{goal['id']}").json()["currentAmount"] == 500


def test_goal_edit_form_for_missing_goal_is_404(client) -> None:
    response = client.post(
        "/goals/99",
        data={"csrf_token": generate_csrf_token(), "name": "Trip", "target_amount": "10"},
    )

    assert response.status_code == 404
    assert "Goal not found" in response.text
