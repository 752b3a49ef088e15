import io

import numpy as np
import pytest
from PIL import Image

from chex_ui.models.graph import GraphOutputs, InferenceGraph


def make_bitmap(height, width, rgb=(128, 128, 128), alpha=255):
    bmp = np.empty((height, width, 4), dtype=np.uint8)
    bmp[..., :3] = rgb
    bmp[..., 3] = alpha
    return bmp


def png_bytes(bitmap):
    buf = io.BytesIO()
    Image.fromarray(bitmap, "RGBA").save(buf, format="PNG")
    return buf.getvalue()


class FakeGraph(InferenceGraph):
    """In-memory graph returning fixed tensors."""

    def __init__(self, features=None, logits=None, grads=None, num_classes=14):
        self.features = None if features is None else np.asarray(features, np.float32)
        self.logits = None if logits is None else np.asarray(logits, np.float32)
        self.grads = None if grads is None else np.asarray(grads, np.float32)
        self.num_classes = num_classes
        self.exposes_features = self.features is not None
        self.supports_gradients = self.grads is not None
        self.runs = 0
        self.last_tensor = None
        self.closed = False

    def run(self, tensor):
        self.runs += 1
        self.last_tensor = tensor
        return GraphOutputs(logits=self.logits, features=self.features)

    def gradients(self, tensor, target_index):
        self.last_tensor = tensor
        return self.features, self.grads

    def close(self):
        self.closed = True


@pytest.fixture
def gray_bitmap():
    return make_bitmap(224, 224)


@pytest.fixture
def gray_png(gray_bitmap):
    return png_bytes(gray_bitmap)


def dicom_without_pixels(path):
    """Write a DICOM file that has header tags but no Pixel Data."""
    from pydicom.dataset import FileDataset, FileMetaDataset
    from pydicom.uid import ExplicitVRLittleEndian, generate_uid

    meta = FileMetaDataset()
    meta.MediaStorageSOPClassUID = "1.2.840.10008.5.1.4.1.1.1"
    meta.MediaStorageSOPInstanceUID = generate_uid()
    meta.TransferSyntaxUID = ExplicitVRLittleEndian
    ds = FileDataset(str(path), {}, file_meta=meta, preamble=b"\0" * 128)
    ds.PatientName = "Anonymous"
    ds.Modality = "DX"
    ds.save_as(str(path))
    return path
