"""Shared fixtures: small synthetic clips with sub-parts, bones and intervals."""

import math

import pytest

from ghostclip.shared.models import (
    ActivityInterval, Clip, ClipSet, ClipSetHeader, MaterialParameters,
    Sample, SubPartKind, SubPartMeta, Transform,
)


def walker_sample(i: int, dt: float = 0.1, with_hat: bool = True) -> Sample:
    t = i * dt
    root = Transform.from_euler(
        location=(1.5 * t - 2.0, -0.25 * t, 0.9 + 0.05 * math.sin(6.0 * t)),
        euler_deg=(0.0, 5.0 * math.cos(t), 20.0 * math.sin(t)),
        scale=(1.0, 1.0, 1.0 + 0.2 * t),
    )
    transforms = {"Root": root, "Body": root.copy()}
    if with_hat:
        transforms["Hat"] = Transform(location=root.location + [0.0, 0.0, 0.9])
    bones = [
        Transform.from_euler(location=(0.0, 0.1, -0.45), euler_deg=(30.0 * math.sin(6.0 * t), 0.0, 0.0)),
        Transform.from_euler(location=(0.0, 0.0, -0.45 - 0.01 * i), euler_deg=(15.0, 10.0 * t, 0.0)),
        Transform.from_euler(location=(0.02 * i, 0.0, -0.1), euler_deg=(-40.0, 0.0, 5.0)),
    ]
    return Sample(t, i, transforms, {"Body": bones})


def make_metas():
    return {
        "Root": SubPartMeta("Root", SubPartKind.STATIC_MESH, "/Meshes/Capsule"),
        "Body": SubPartMeta(
            "Body", SubPartKind.SKELETAL_MESH, "/Meshes/Walker",
            material_paths=["/Materials/Skin", "/Materials/Cloth"],
            material_params={1: MaterialParameters({"Tint": (0.25, 0.5, 0.75, 1.0)}, {"Roughness": 0.5})},
            leader_name="Root",
        ),
        "Hat": SubPartMeta("Hat", SubPartKind.GROOM, "/Grooms/Hat"),
    }


def make_walker_clip(n: int = 12) -> Clip:
    metas = make_metas()
    return Clip(
        primary_name="Root",
        intervals=[
            ActivityInterval(metas["Root"], 0, n),
            ActivityInterval(metas["Body"], 0, n),
            ActivityInterval(metas["Hat"], 3, 8),
        ],
        samples=[walker_sample(i) for i in range(n)],
    )


@pytest.fixture
def walker_clip():
    return make_walker_clip()


@pytest.fixture
def walker_clip_set():
    second = make_walker_clip(6)
    second.primary_name = "Body"
    header = ClipSetHeader(
        file_name="walk",
        level_name="arena",
        tags=["arena", "walker"],
        spawn_transform=Transform.from_euler((1.0, 2.0, 3.0), (0.0, 0.0, 90.0)),
        max_record_time=3.0,
        sampling_interval=0.1,
        total_length=1.1,
        group_user_data=b"group-notes",
        actor_user_data=[b"first", b""],
    )
    return ClipSet(header=header, clips=[make_walker_clip(), second])
