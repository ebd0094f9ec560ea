import numpy as np
import pytest
import trimesh
from pygltflib import GLTF2

from text3d.exporter import LIGHTS_EXTENSION, export_scene, look_at_rotation, srgb_to_linear
from text3d.geometry import MESH_NAME, build_text_scene, text_scale


def load_glb(payload: bytes) -> GLTF2:
    assert payload[:4] == b"glTF"
    return GLTF2.load_from_bytes(payload)


def read_accessor(gltf: GLTF2, index: int, width: int) -> np.ndarray:
    accessor = gltf.accessors[index]
    view = gltf.bufferViews[accessor.bufferView]
    blob = gltf.binary_blob()
    data = blob[view.byteOffset:view.byteOffset + view.byteLength]
    return np.frombuffer(data, dtype=np.float32).reshape(accessor.count, width)


@pytest.fixture
def animated_glb(font):
    return load_glb(export_scene(build_text_scene(font, "Hi", animate=True)))


def test_single_mesh_node(animated_glb):
    assert len(animated_glb.meshes) == 1
    mesh_nodes = [n for n in animated_glb.nodes if n.mesh is not None]
    assert len(mesh_nodes) == 1
    assert mesh_nodes[0].name == MESH_NAME
    assert mesh_nodes[0].scale == pytest.approx([text_scale("Hi")] * 3)


def test_positions_are_centered(animated_glb):
    primitive = animated_glb.meshes[0].primitives[0]
    accessor = animated_glb.accessors[primitive.attributes.POSITION]
    assert (accessor.min[0] + accessor.max[0]) / 2 == pytest.approx(0.0, abs=1e-5)
    assert (accessor.min[1] + accessor.max[1]) / 2 == pytest.approx(0.0, abs=1e-5)


def test_material(animated_glb):
    assert len(animated_glb.materials) == 1
    material = animated_glb.materials[0]
    pbr = material.pbrMetallicRoughness
    assert pbr.baseColorFactor == pytest.approx(srgb_to_linear("#4a90e2") + [1.0])
    assert pbr.roughnessFactor == pytest.approx(0.3)
    assert pbr.metallicFactor == pytest.approx(0.4)
    assert material.emissiveFactor == pytest.approx([c * 0.2 for c in srgb_to_linear("#4a90e2")])


def test_rotation_animation(animated_glb):
    assert len(animated_glb.animations) == 1
    animation = animated_glb.animations[0]
    assert animation.name == "rotate"

    channel = animation.channels[0]
    assert channel.target.path == "rotation"
    assert animated_glb.nodes[channel.target.node].mesh == 0

    sampler = animation.samplers[channel.sampler]
    times = read_accessor(animated_glb, sampler.input, 1).ravel()
    rotations = read_accessor(animated_glb, sampler.output, 4)
    assert times[0] == 0.0
    assert times[-1] == pytest.approx(10.0)
    np.testing.assert_allclose(rotations[0], [0, 0, 0, 1], atol=1e-6)
    np.testing.assert_allclose(rotations[-1], [0, 0, 0, -1], atol=1e-6)


def test_no_animation(font):
    gltf = load_glb(export_scene(build_text_scene(font, "Hi", animate=False)))
    assert gltf.animations == []
    assert len(gltf.meshes) == 1


def test_lights(animated_glb):
    assert LIGHTS_EXTENSION in animated_glb.extensionsUsed
    lights = animated_glb.extensions[LIGHTS_EXTENSION]["lights"]
    assert [light["type"] for light in lights] == ["directional", "directional"]
    light_nodes = [n for n in animated_glb.nodes if n.extensions.get(LIGHTS_EXTENSION)]
    assert len(light_nodes) == 2
    assert all(node.mesh is None for node in light_nodes)


def test_same_text_same_payload_shape(font):
    a = load_glb(export_scene(build_text_scene(font, "oH")))
    b = load_glb(export_scene(build_text_scene(font, "oH")))
    assert a.binary_blob() == b.binary_blob()


def test_srgb_to_linear():
    assert srgb_to_linear("#ffffff") == pytest.approx([1.0, 1.0, 1.0])
    assert srgb_to_linear("#000000") == pytest.approx([0.0, 0.0, 0.0])
    assert srgb_to_linear("4a90e2")[2] > srgb_to_linear("4a90e2")[0]


@pytest.mark.parametrize("position", [(1.0, 1.0, 1.0), (-1.0, 0.5, 0.5), (0.0, 0.0, 1.0), (0.0, 0.0, -1.0)])
def test_look_at_rotation_points_light_at_origin(position):
    x, y, z, w = look_at_rotation(position)
    matrix = trimesh.transformations.quaternion_matrix([w, x, y, z])
    pointing = matrix[:3, :3] @ np.array([0.0, 0.0, -1.0])
    expected = -np.asarray(position) / np.linalg.norm(position)
    np.testing.assert_allclose(pointing, expected, atol=1e-9)
