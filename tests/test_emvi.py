import pytest

from blogsite.fetchers.emvi import CMSAuthError, CMSError, EmviClient

from conftest import Clock, FakeResponse, FakeSession

API = "https://api.test"
AUTH = "https://auth.test"
TOKEN_URL = AUTH + "/api/v1/auth/token"
SEARCH_URL = API + "/api/v1/search/article"


def token(value="tok-1", expires_in=3600):
    return FakeResponse(json_data={"access_token": value, "token_type": "Bearer", "expires_in": expires_in})


def listing(*ids):
    return FakeResponse(json_data={
        "results": [
            {
                "id": article_id,
                "published": "2021-03-04T10:00:00.123456789Z",
                "latest_article_content": {"title": f"T {article_id}", "language_id": "en"},
            }
            for article_id in ids
        ],
        "count": len(ids),
    })


def make_client(session, clock=None):
    return EmviClient(
        client_id="client",
        client_secret="secret",
        organization="orga",
        api_url=API,
        auth_url=AUTH,
        session=session,
        clock=clock or Clock(),
    )


def test_find_articles_sends_filter_and_credentials():
    session = FakeSession({
        ("POST", TOKEN_URL): token(),
        ("POST", SEARCH_URL): listing("a1", "a2"),
    })
    client = make_client(session)

    articles = client.find_articles("blog", offset=20)

    assert [a.id for a in articles] == ["a1", "a2"]
    assert articles[0].year == 2021
    assert articles[0].language_id == "en"

    method, url, kwargs = session.calls[-1]
    assert (method, url) == ("POST", SEARCH_URL)
    assert kwargs["json"] == {"offset": 20, "tags": "blog", "sort_published": "desc"}
    assert kwargs["headers"] == {"Authorization": "Bearer tok-1", "Client": "client", "Organization": "orga"}
    assert session.calls[0][2]["json"]["grant_type"] == "client_credentials"


def test_token_is_reused_until_it_expires():
    clock = Clock()
    session = FakeSession({
        ("POST", TOKEN_URL): [token("tok-1", 120), token("tok-2", 120)],
        ("POST", SEARCH_URL): listing(),
    })
    client = make_client(session, clock)

    client.find_articles("blog")
    client.find_articles("blog")
    assert session.urls("POST").count(TOKEN_URL) == 1

    clock.advance(61)
    client.find_articles("blog")
    assert session.urls("POST").count(TOKEN_URL) == 2
    assert session.calls[-1][2]["headers"]["Authorization"] == "Bearer tok-2"


def test_rejected_token_is_renewed_once():
    session = FakeSession({
        ("POST", TOKEN_URL): [token("old"), token("new")],
        ("POST", SEARCH_URL): [FakeResponse(status_code=401), listing("a1")],
    })
    client = make_client(session)

    assert [a.id for a in client.find_articles("blog")] == ["a1"]
    assert session.calls[-1][2]["headers"]["Authorization"] == "Bearer new"


def test_get_article_content():
    url = API + "/api/v1/article/a1"
    session = FakeSession({
        ("POST", TOKEN_URL): token(),
        ("GET", url): FakeResponse(json_data={
            "article": {"id": "a1"},
            "content": {"title": "Hello", "content": "<p>body</p>", "language_id": "en", "version": 3},
        }),
    })
    client = make_client(session)

    content = client.get_article_content("a1", "en")

    assert content.title == "Hello"
    assert content.content == "<p>body</p>"
    assert content.version == 3
    assert session.calls[-1][2]["params"] == {"lang": "en", "version": 0}


def test_server_error_raises_cms_error():
    session = FakeSession({
        ("POST", TOKEN_URL): token(),
        ("POST", SEARCH_URL): FakeResponse(status_code=500),
    })

    with pytest.raises(CMSError) as excinfo:
        make_client(session).find_articles("blog")
    assert excinfo.value.status_code == 500


def test_missing_content_raises_cms_error():
    session = FakeSession({
        ("POST", TOKEN_URL): token(),
        ("GET", API + "/api/v1/article/a1"): FakeResponse(json_data={"article": {"id": "a1"}}),
    })

    with pytest.raises(CMSError):
        make_client(session).get_article_content("a1", "en")


def test_invalid_credentials_raise_auth_error():
    session = FakeSession({("POST", TOKEN_URL): FakeResponse(status_code=403)})

    with pytest.raises(CMSAuthError):
        make_client(session).find_articles("blog")
    # client errors are not retried
    assert session.urls("POST") == [TOKEN_URL]


def test_missing_credentials_raise_auth_error():
    client = EmviClient(client_id="", client_secret="", organization="", api_url=API, auth_url=AUTH,
                        session=FakeSession())

    with pytest.raises(CMSAuthError):
        client.find_articles("blog")
