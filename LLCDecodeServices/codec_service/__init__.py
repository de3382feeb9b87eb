from .codec_service import CodecService, CodecHandle, DecodeParams
from .npy_codec_service import NpyCodecService, NpyCodecSchema, CodecServiceSchema
