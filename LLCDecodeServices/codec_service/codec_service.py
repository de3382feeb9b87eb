from abc import ABCMeta, abstractmethod

from LLCDecodeServices.geometry import Extent, compute_grid

class DecodeParams:
    """
    The per-decode settings handed to a codec.

    Members:
        downsampling: Per-axis downsampling factors [x,y,t] (0 means full resolution)
        accuracy: Requested error tolerance (0 means near-lossless),
                  interpreted independently of the downsampling.
        extent: The Extent to decode.  An unspecified Extent means the whole volume.
    """
    def __init__(self, downsampling=(0,0,0), accuracy=0.0, extent=None):
        self.downsampling = tuple(int(d) for d in downsampling)
        self.accuracy = float(accuracy)
        self.extent = extent if extent is not None else Extent()

    def __repr__(self):
        return f"DecodeParams(downsampling={self.downsampling}, accuracy={self.accuracy}, extent={self.extent})"


class CodecHandle:
    """
    An opened file.  Private to the task that opened it.

    Members:
        file_id: The file identifier the handle was opened with.
        dims: The full volume dimensions stored in the file, [x,y,t]
        dtype: The sample type stored in the file.
    """
    def __init__(self, file_id, dims, dtype):
        self.file_id = file_id
        self.dims = tuple(int(d) for d in dims)
        self.dtype = dtype


class CodecService(metaclass=ABCMeta):
    """
    Interface to a multi-resolution, error-bounded codec that stores one
    face/depth/time-block of a dataset per file.
    """

    SUPPORTED_CODECS = ['npy']

    @classmethod
    def create_from_config( cls, codec_config ):
        from .npy_codec_service import NpyCodecService

        codec_keys = set(codec_config.keys()).intersection( set(CodecService.SUPPORTED_CODECS) )
        if len(codec_keys) != 1:
            raise RuntimeError(f"Unsupported codec (or too many specified): {codec_keys}")

        if "npy" in codec_config:
            return NpyCodecService( codec_config )
        raise RuntimeError( "Unknown codec type." )

    @abstractmethod
    def init(self, file_id, base_dir, params):
        """
        Open the given file (relative to base_dir) and return a CodecHandle.
        Raises CodecError if the file can't be opened.
        """
        raise NotImplementedError

    def compute_output_grid(self, handle, params):
        """
        Return the Grid of samples that decode() will produce for these params.
        """
        extent = params.extent
        if extent.is_unspecified:
            extent = Extent.whole(handle.dims)
        return compute_grid(handle.dims, params.downsampling, extent)

    @abstractmethod
    def decode(self, handle, params, out):
        """
        Decode the samples of compute_output_grid(handle, params)
        into the given (t,y,x) array, which must already have the
        grid's shape and the handle's dtype.
        Raises CodecError if decoding fails.
        """
        raise NotImplementedError

    def release(self, handle):
        """
        Free any resources held by the handle.
        """
        pass
