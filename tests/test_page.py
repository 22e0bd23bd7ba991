from __future__ import annotations

import pytest

from page2import.page import PageInputError, create_page, normalize_screenshot, prepare_document


def test_prepare_document_strips_noise() -> None:
    soup = prepare_document(
        """
        <html>
          <head><script>track()</script><style>p {}</style></head>
          <body>
            <!-- comment -->
            <main id="main" data-track="1" style="color: red" class="content">
              <p   onclick="x()">Hello
                 world</p>
              <div class="empty">   </div>
              <noscript>enable js</noscript>
            </main>
          </body>
        </html>
        """
    )

    html = str(soup)
    assert "script" not in html and "style=" not in html and "noscript" not in html
    assert "comment" not in html
    assert 'data-track' not in html and "onclick" not in html
    assert soup.select_one("main")["id"] == "main"
    assert soup.select_one("main")["class"] == ["content"]
    assert soup.select_one("div.empty") is None
    assert soup.select_one("p").get_text() == "Hello world"


def test_page_body_returns_body_markup() -> None:
    page = create_page("<html><body><main>Hello</main></body></html>")

    assert page.body == "<body><main>Hello</main></body>"
    assert page.screenshot == ""


@pytest.mark.parametrize("html", ["", "   ", None])
def test_create_page_rejects_empty_html(html) -> None:
    with pytest.raises(PageInputError):
        create_page(html)


def test_normalize_screenshot_strips_data_url() -> None:
    assert normalize_screenshot("data:image/png;base64,AAAA") == "AAAA"
    assert normalize_screenshot("AAAA") == "AAAA"
    assert normalize_screenshot(None) == ""
