from digitalflow.services.automation.template_renderer import render


def test_known_keys_are_substituted_case_insensitively():
    result = render("Olá {{NOME}}, seu email é {{Email}}", {"nome": "Ana", "email": "ana@example.com"})
    assert result == "Olá Ana, seu email é ana@example.com"


def test_unknown_placeholders_are_left_untouched():
    assert render("Oi {{nome}} {{cupom}}", {"nome": "Ana"}) == "Oi Ana {{cupom}}"


def test_none_renders_as_empty_string():
    assert render("Produto: {{productName}}!", {"productName": None}) == "Produto: !"


def test_non_string_values_are_stringified():
    assert render("{{timeOnPage}}s em {{pageSlug}}", {"timeOnPage": 45, "pageSlug": "oferta"}) == "45s em oferta"


def test_every_occurrence_is_replaced():
    assert render("{{nome}} {{nome}} {{NOME}}", {"nome": "Ana"}) == "Ana Ana Ana"


def test_template_without_placeholders_is_unchanged():
    assert render("<p>Sem variáveis</p>", {"nome": "Ana"}) == "<p>Sem variáveis</p>"
    assert render("", {"nome": "Ana"}) == ""
