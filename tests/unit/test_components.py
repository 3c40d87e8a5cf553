import pytest

from app.ai.components import normalize_regenerated_payload, strip_html, to_component_draft, to_component_drafts
from app.ai.pipeline.contracts import FlatComponent, QuizOption
from app.core.errors import ProviderError
from app.storage.content_repo import ComponentType


def test_strip_html_returns_visible_text() -> None:
  assert strip_html("<p>Hello <b>world</b></p>\n<ul><li>one &amp; two</li></ul>") == "Hello world one & two"
  assert strip_html("") == ""


def test_text_component_derives_plaintext() -> None:
  draft = to_component_draft(FlatComponent(component_type=ComponentType.TEXT, text_html="<p>Validate <em>all</em> input.</p>", heading_text="ignored"))
  assert draft.component_type == ComponentType.TEXT
  assert draft.payload == {"html": "<p>Validate <em>all</em> input.</p>", "plaintext": "Validate all input."}


def test_heading_and_image_components_keep_only_their_fields() -> None:
  heading, image = to_component_drafts(
    [
      FlatComponent(component_type=ComponentType.HEADING, heading_level=3, heading_text="Threat models", text_html="<p>stray</p>"),
      FlatComponent(component_type=ComponentType.IMAGE, image_description="A layered diagram", image_alt_text="Defense in depth", image_caption="Layers"),
    ]
  )
  assert heading.payload == {"level": 3, "text": "Threat models"}
  assert image.payload == {"image_description": "A layered diagram", "alt_text": "Defense in depth", "caption": "Layers"}


def test_quiz_component_builds_multiple_choice_payload() -> None:
  component = FlatComponent(
    component_type=ComponentType.QUIZ,
    quiz_question="Which input is trusted?",
    quiz_options=[QuizOption(id="a", text="None"), QuizOption(id="b", text="Headers")],
    quiz_correct_answer_id="a",
    quiz_explanation="Treat all input as untrusted.",
  )
  payload = to_component_draft(component).payload
  assert payload["question_type"] == "multiple_choice"
  assert payload["options"] == [{"id": "a", "text": "None"}, {"id": "b", "text": "Headers"}]
  assert payload["correct_answer_id"] == "a"


def test_quiz_with_unknown_correct_answer_is_rejected() -> None:
  component = FlatComponent(component_type=ComponentType.QUIZ, quiz_question="Q?", quiz_options=[QuizOption(id="a", text="A"), QuizOption(id="b", text="B")], quiz_correct_answer_id="c")
  with pytest.raises(ProviderError):
    to_component_draft(component)


def test_quiz_with_too_few_options_is_rejected() -> None:
  component = FlatComponent(component_type=ComponentType.QUIZ, quiz_question="Q?", quiz_options=[QuizOption(id="a", text="A")], quiz_correct_answer_id="a")
  with pytest.raises(ProviderError):
    to_component_draft(component)


def test_regenerated_text_payload_recomputes_plaintext() -> None:
  payload = normalize_regenerated_payload(ComponentType.TEXT, {"html": "<p>Short <i>and</i> sweet</p>", "plaintext": "stale"})
  assert payload == {"html": "<p>Short <i>and</i> sweet</p>", "plaintext": "Short and sweet"}


@pytest.mark.parametrize(
  ("component_type", "payload"),
  [
    (ComponentType.TEXT, {"plaintext": "no html"}),
    (ComponentType.HEADING, {"text": "Title", "level": 7}),
    (ComponentType.IMAGE, {"alt_text": "alt"}),
    (ComponentType.QUIZ, {"question": "Q?", "options": [{"id": "a", "text": "A"}, {"id": "b", "text": "B"}], "correct_answer_id": "z"}),
    (ComponentType.QUIZ, {"question": "Q?", "options": "not-a-list", "correct_answer_id": "a"}),
  ],
)
def test_regenerated_payload_with_wrong_shape_is_rejected(component_type: ComponentType, payload: dict) -> None:
  with pytest.raises(ProviderError):
    normalize_regenerated_payload(component_type, payload)


def test_regenerated_quiz_payload_is_normalized() -> None:
  payload = normalize_regenerated_payload(ComponentType.QUIZ, {"question": "Q?", "options": [{"id": "a", "text": "A"}, {"id": "b", "text": "B"}], "correct_answer_id": "b", "explanation": "B is right."})
  assert payload == {"question": "Q?", "question_type": "multiple_choice", "options": [{"id": "a", "text": "A"}, {"id": "b", "text": "B"}], "correct_answer_id": "b", "explanation": "B is right."}
