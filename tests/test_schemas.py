from app.schemas import JobRecord, JobStatus, StartJobRequest, can_transition, parse_status


def test_job_record_reads_camel_case_document() -> None:
    record = JobRecord.from_document(
        "job-7",
        {
            "uid": "u1",
            "status": "processing",
            "promptV1": {
                "product": {"description": "  cold brew  ", "imageGsPath": " gs://b/o.jpg "},
                "cta": {"copy": "Try it"},
                "audio": {"preference": "with_sound", "sfxHints": ["pour"]},
            },
            "inputImageUrl": "",
            "processing": None,
            "brief": {"brand": {"name": " Brew Co ", "slogan": ""}},
            "unknownField": {"ignored": True},
        },
    )

    assert record.job_id == "job-7"
    assert record.job_status is JobStatus.PROCESSING
    assert record.prompt_v1.product.description == "cold brew"
    assert record.prompt_v1.product.image_gs_path == "gs://b/o.jpg"
    assert record.prompt_v1.cta.copy_text == "Try it"
    assert record.prompt_v1.audio.sfx_hints == ["pour"]
    assert record.input_image_url is None
    assert record.processing.started_at is None
    assert record.brief.brand.name == "Brew Co"
    assert record.brief.brand.slogan is None


def test_ready_requires_url() -> None:
    assert JobRecord.from_document("j", {"status": "ready", "finalVideoUrl": "https://v"}).is_ready
    assert not JobRecord.from_document("j", {"status": "ready"}).is_ready


def test_unknown_status_is_pending() -> None:
    assert parse_status(None) is JobStatus.PENDING
    assert parse_status("structuring") is JobStatus.PENDING
    assert parse_status(" Ready ") is JobStatus.READY


def test_transitions_only_move_forward() -> None:
    assert can_transition(JobStatus.PENDING, JobStatus.GENERATING)
    assert can_transition(JobStatus.QUEUED, JobStatus.GENERATING)
    assert can_transition(JobStatus.GENERATING, JobStatus.PROCESSING)
    assert can_transition(JobStatus.PROCESSING, JobStatus.READY)
    assert can_transition(JobStatus.PROCESSING, JobStatus.ERROR)
    assert not can_transition(JobStatus.PENDING, JobStatus.READY)
    assert not can_transition(JobStatus.READY, JobStatus.ERROR)
    assert not can_transition(JobStatus.ERROR, JobStatus.GENERATING)


def test_start_request_trims_job_id() -> None:
    assert StartJobRequest.model_validate({"jobId": "  abc "}).job_id == "abc"
    assert StartJobRequest.model_validate({}).job_id == ""
