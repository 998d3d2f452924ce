"""GridFS S3 Migration Tool - copy GridFS files into an S3 bucket."""

__version__ = "0.1.0"
