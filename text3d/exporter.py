"""
GLB Exporter
Serializes a TextScene into a self-contained binary glTF with pygltflib
"""
import logging
from typing import List, Tuple

import numpy as np
import pygltflib
from pygltflib import (
    GLTF2, Accessor, Animation, AnimationChannel, AnimationChannelTarget,
    AnimationSampler, Asset, Attributes, Buffer, BufferView, Material,
    Mesh, Node, PbrMetallicRoughness, Primitive, Scene,
)

from .errors import ExportError
from .geometry import DirectionalLight, TextScene

logger = logging.getLogger(__name__)

LIGHTS_EXTENSION = "KHR_lights_punctual"
GENERATOR = "text3d"


def srgb_to_linear(hex_color: str) -> List[float]:
    """Convert '#rrggbb' to linear RGB floats, as glTF color factors expect"""
    value = hex_color.lstrip("#")
    channels = [int(value[i:i + 2], 16) / 255.0 for i in (0, 2, 4)]
    return [
        c / 12.92 if c <= 0.04045 else ((c + 0.055) / 1.055) ** 2.4
        for c in channels
    ]


def look_at_rotation(position) -> List[float]:
    """
    Quaternion (xyzw) turning a light's -Z axis to point from position at the origin
    """
    direction = -np.asarray(position, dtype=np.float64)
    direction /= np.linalg.norm(direction)
    forward = np.array([0.0, 0.0, -1.0])

    axis = np.cross(forward, direction)
    sin_angle = np.linalg.norm(axis)
    cos_angle = float(np.dot(forward, direction))
    if sin_angle < 1e-9:
        # Parallel or opposite: any perpendicular axis works
        return [0.0, 0.0, 0.0, 1.0] if cos_angle > 0 else [0.0, 1.0, 0.0, 0.0]

    axis /= sin_angle
    half = np.arctan2(sin_angle, cos_angle) / 2.0
    x, y, z = axis * np.sin(half)
    return [float(x), float(y), float(z), float(np.cos(half))]


class _BlobBuilder:
    """Packs arrays into one binary buffer, one buffer view and accessor each"""

    def __init__(self, gltf: GLTF2):
        self.gltf = gltf
        self.chunks: List[bytes] = []
        self.offset = 0

    def add(self, array: np.ndarray, component_type: int, accessor_type: str,
            target=None, with_bounds: bool = False) -> int:
        data = array.tobytes()
        self.gltf.bufferViews.append(BufferView(
            buffer=0,
            byteOffset=self.offset,
            byteLength=len(data),
            target=target,
        ))
        accessor = Accessor(
            bufferView=len(self.gltf.bufferViews) - 1,
            componentType=component_type,
            count=len(array),
            type=accessor_type,
        )
        if with_bounds:
            flat = array.reshape(len(array), -1)
            accessor.min = flat.min(axis=0).tolist()
            accessor.max = flat.max(axis=0).tolist()
        self.gltf.accessors.append(accessor)

        padding = (-len(data)) % 4
        self.chunks.append(data + b"\x00" * padding)
        self.offset += len(data) + padding
        return len(self.gltf.accessors) - 1

    def blob(self) -> bytes:
        return b"".join(self.chunks)


def _material(scene: TextScene) -> Material:
    mat = scene.material
    emissive = [c * mat.emissive_intensity for c in srgb_to_linear(mat.emissive)]
    return Material(
        name=mat.name,
        pbrMetallicRoughness=PbrMetallicRoughness(
            baseColorFactor=srgb_to_linear(mat.color) + [1.0],
            metallicFactor=mat.metalness,
            roughnessFactor=mat.roughness,
        ),
        emissiveFactor=emissive,
    )


def _light_nodes(lights: Tuple[DirectionalLight, ...]) -> Tuple[List[dict], List[Node]]:
    definitions, nodes = [], []
    for index, light in enumerate(lights):
        definitions.append({
            "name": light.name,
            "type": "directional",
            "color": list(light.color),
            "intensity": light.intensity,
        })
        nodes.append(Node(
            name=light.name,
            translation=list(light.position),
            rotation=look_at_rotation(light.position),
            extensions={LIGHTS_EXTENSION: {"light": index}},
        ))
    return definitions, nodes


def _build_gltf(scene: TextScene) -> GLTF2:
    gltf = GLTF2(asset=Asset(generator=GENERATOR, version="2.0"))
    blob = _BlobBuilder(gltf)

    mesh = scene.mesh
    positions = np.ascontiguousarray(mesh.vertices, dtype=np.float32)
    normals = np.ascontiguousarray(mesh.vertex_normals, dtype=np.float32)
    indices = np.ascontiguousarray(mesh.faces, dtype=np.uint32).reshape(-1)

    position_accessor = blob.add(positions, pygltflib.FLOAT, pygltflib.VEC3,
                                 target=pygltflib.ARRAY_BUFFER, with_bounds=True)
    normal_accessor = blob.add(normals, pygltflib.FLOAT, pygltflib.VEC3,
                               target=pygltflib.ARRAY_BUFFER)
    index_accessor = blob.add(indices, pygltflib.UNSIGNED_INT, pygltflib.SCALAR,
                              target=pygltflib.ELEMENT_ARRAY_BUFFER)

    gltf.materials.append(_material(scene))
    gltf.meshes.append(Mesh(
        name=scene.name,
        primitives=[Primitive(
            attributes=Attributes(POSITION=position_accessor, NORMAL=normal_accessor),
            indices=index_accessor,
            material=0,
            mode=pygltflib.TRIANGLES,
        )],
    ))
    gltf.nodes.append(Node(name=scene.name, mesh=0, scale=[scene.scale] * 3))

    if scene.lights:
        definitions, nodes = _light_nodes(scene.lights)
        gltf.nodes.extend(nodes)
        gltf.extensionsUsed.append(LIGHTS_EXTENSION)
        gltf.extensions[LIGHTS_EXTENSION] = {"lights": definitions}

    gltf.scenes.append(Scene(name="Scene", nodes=list(range(len(gltf.nodes)))))
    gltf.scene = 0

    clip = scene.animation
    if clip is not None:
        times = np.ascontiguousarray(clip.times, dtype=np.float32)
        rotations = np.ascontiguousarray(clip.rotations, dtype=np.float32)
        input_accessor = blob.add(times, pygltflib.FLOAT, pygltflib.SCALAR, with_bounds=True)
        output_accessor = blob.add(rotations, pygltflib.FLOAT, pygltflib.VEC4)
        gltf.animations.append(Animation(
            name=clip.name,
            samplers=[AnimationSampler(
                input=input_accessor,
                output=output_accessor,
                interpolation="LINEAR",
            )],
            channels=[AnimationChannel(
                sampler=0,
                target=AnimationChannelTarget(node=0, path="rotation"),
            )],
        ))

    data = blob.blob()
    gltf.buffers.append(Buffer(byteLength=len(data)))
    gltf.set_binary_blob(data)
    return gltf


def export_scene(scene: TextScene) -> bytes:
    """
    Serialize a scene to GLB bytes

    Raises:
        ExportError: if the scene cannot be encoded
    """
    logger.info(f"Exporting to GLB: {scene.name} ({len(scene.mesh.faces)} faces)")
    try:
        gltf = _build_gltf(scene)
        payload = b"".join(gltf.save_to_bytes())
    except (ValueError, TypeError, OverflowError) as e:
        raise ExportError(f"GLB export failed: {e}") from e

    if not payload:
        raise ExportError("GLB export produced no data")

    logger.info(f"Export completed: {len(payload)} bytes")
    return payload
