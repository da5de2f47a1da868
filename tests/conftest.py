import ezdxf
import pytest

from dxfscene.drawing import DrawingLoader


@pytest.fixture
def doc():
    return ezdxf.new("R2010")


@pytest.fixture
def msp(doc):
    return doc.modelspace()


@pytest.fixture
def save(tmp_path):
    """Write a document into tmp_path and return its path."""
    def _save(document, name="drawing.dxf"):
        path = tmp_path / name
        document.saveas(path)
        return path
    return _save


@pytest.fixture
def assemble():
    """Assemble an in-memory document without a file round trip."""
    def _assemble(document, **kwargs):
        return DrawingLoader(**kwargs).load_document(document)
    return _assemble
