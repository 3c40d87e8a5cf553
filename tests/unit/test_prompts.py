from app.ai.pipeline.contracts import LessonContentRequest, OutlineRequest, PlannedSectionRequest, RegenerateComponentRequest
from app.ai.prompts import build_lesson_content_prompt, build_regenerate_component_prompt, build_section_lessons_prompt, build_section_plan_prompt
from app.integrations.contracts import KnowledgeDigest, TargetAudience
from app.storage.content_repo import ComponentType

AUDIENCE = TargetAudience(id="aud-1", role="Backend developer", experience_level="intermediate", learning_goals=("Ship safer code",))
DIGEST = KnowledgeDigest(id="ks-1", name="Handbook", domain="security", summary="Secure coding basics.", chunks=tuple(f"chunk-{index}" for index in range(1, 8)), keywords=("owasp",))


def _outline_request() -> OutlineRequest:
  return OutlineRequest(course_title="Secure Coding", desired_outcome="Fewer vulnerabilities", knowledge=(DIGEST,), audience=AUDIENCE, additional_context="Focus on web apps")


def _lesson_request(**overrides) -> LessonContentRequest:
  values = {
    "course_title": "Secure Coding",
    "section_title": "Foundations",
    "lesson_title": "Intro",
    "lesson_description": "Why it matters",
    "learning_objectives": ("Explain risk",),
    "knowledge": (DIGEST,),
    "audience": AUDIENCE,
    "is_last_in_section": False,
    "is_last_in_course": False,
    "next_lesson_title": "Basics",
  }
  values.update(overrides)
  return LessonContentRequest(**values)


def test_section_plan_prompt_caps_chunks_per_source() -> None:
  prompt = build_section_plan_prompt(_outline_request(), max_chunks=5)
  assert "chunk-5" in prompt
  assert "chunk-6" not in prompt
  assert "Focus on web apps" in prompt
  assert "Backend developer" in prompt


def test_section_lessons_prompt_uses_summaries_only() -> None:
  section = PlannedSectionRequest(title="Foundations", description="Core ideas", lesson_titles=("Intro", "Basics"))
  prompt = build_section_lessons_prompt(_outline_request(), section)
  assert "Secure coding basics." in prompt
  assert "chunk-1" not in prompt
  assert "- Intro\n- Basics" in prompt


def test_lesson_prompt_caps_chunks_and_asks_for_segue() -> None:
  prompt = build_lesson_content_prompt(_lesson_request(), max_chunks=3)
  assert "chunk-3" in prompt
  assert "chunk-4" not in prompt
  assert 'transitions to the next lesson: "Basics"' in prompt


def test_last_lesson_prompt_asks_for_conclusion() -> None:
  prompt = build_lesson_content_prompt(_lesson_request(is_last_in_section=True, is_last_in_course=True, next_lesson_title=None, previous_lesson_title="Drills"))
  assert "course conclusion" in prompt
  assert "Previous Lesson: Drills" in prompt
  assert "Next Lesson" not in prompt


def test_regenerate_prompt_includes_current_payload_and_instruction() -> None:
  request = RegenerateComponentRequest(component_type=ComponentType.HEADING, current_payload={"level": 2, "text": "Old"}, instruction="Make it punchier", audience=AUDIENCE, lesson_context="Lesson: Intro")
  prompt = build_regenerate_component_prompt(request)
  assert '"text": "Old"' in prompt
  assert "Make it punchier" in prompt
  assert "Lesson: Intro" in prompt
