"""Input spec and webhook payload validation tests."""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from tutorcast.cli.video_jobs import parse_args
from tutorcast.services.video_generation.schemas import (
    VideoInputSpec,
    VideoWebhookPayload,
    validate_input_text,
)


def make_spec(**overrides) -> VideoInputSpec:
    values = {"avatar_id": uuid4(), "voice_id": uuid4(), "input_text": "Hello class"}
    values.update(overrides)
    return VideoInputSpec(**values)


class TestInputText:
    def test_valid_text_is_unchanged(self):
        text = "Fractions: ½ + ¼ = ¾. Let's practise!"
        assert validate_input_text(text) == text

    def test_max_length_accepted(self):
        assert validate_input_text("a" * 5000)

    @pytest.mark.parametrize(
        "text",
        ["", "   \n", "a" * 5001, "<script>", 'say "hi"', "bell\x07", "c1\x85control"],
    )
    def test_invalid_text_rejected(self, text):
        with pytest.raises(ValueError):
            validate_input_text(text)


class TestVideoInputSpec:
    def test_defaults(self):
        spec = make_spec()

        assert (spec.dimension_width, spec.dimension_height) == (1280, 720)
        assert spec.background_type is None

    @pytest.mark.parametrize(
        "background",
        [
            {"background_type": "color", "background_value": "#fff"},
            {"background_type": "color", "background_value": "#1A2B3C"},
            {"background_type": "image", "background_value": "https://cdn.test/bg.png"},
            {
                "background_type": "video",
                "background_value": "https://cdn.test/bg.mp4",
                "background_play_style": "loop",
            },
        ],
    )
    def test_valid_backgrounds(self, background):
        assert make_spec(**background).background_value == background["background_value"]

    @pytest.mark.parametrize(
        "background",
        [
            {"background_value": "#ffffff"},
            {"background_type": "color"},
            {"background_type": "color", "background_value": "white"},
            {"background_type": "image", "background_value": "ftp://cdn.test/bg.png"},
            {
                "background_type": "image",
                "background_value": "https://cdn.test/bg.png",
                "background_play_style": "loop",
            },
            {"background_type": "gradient", "background_value": "#fff"},
        ],
    )
    def test_invalid_backgrounds(self, background):
        with pytest.raises(ValidationError):
            make_spec(**background)

    @pytest.mark.parametrize("field,value", [("dimension_width", 127), ("dimension_height", 4097), ("lesson_id", 0)])
    def test_out_of_range_values(self, field, value):
        with pytest.raises(ValidationError):
            make_spec(**{field: value})


class TestWebhookPayload:
    def test_to_status_report(self):
        payload = VideoWebhookPayload.model_validate(
            {
                "event": "video.completed",
                "data": {
                    "video_id": "vid_1",
                    "status": "completed",
                    "video_url": "https://files/v.mp4",
                    "duration": 10,
                    "metadata": {"render_node": "eu-1"},
                },
                "timestamp": 1760875200,
            }
        )

        report = payload.to_status_report()

        assert report.status == "completed"
        assert report.video_url == "https://files/v.mp4"
        assert report.duration == 10.0
        assert report.metadata == {"render_node": "eu-1"}

    def test_unsupported_event_rejected(self):
        with pytest.raises(ValidationError):
            VideoWebhookPayload.model_validate(
                {
                    "event": "avatar.created",
                    "data": {"video_id": "vid_1", "status": "completed"},
                    "timestamp": 1,
                }
            )


class TestCliArguments:
    def test_relocate_parses_job_id(self):
        job_id = uuid4()

        args = parse_args(["-v", "relocate", str(job_id)])

        assert args.command == "relocate"
        assert args.job_id == job_id
        assert args.verbose is True

    def test_invalid_job_id_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["retry", "not-a-uuid"])

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            parse_args([])
