# Client packages
from .s3_manager import S3Manager, S3Object
from .stack_outputs import StackOutputResolver

__all__ = ['S3Manager', 'S3Object', 'StackOutputResolver']
