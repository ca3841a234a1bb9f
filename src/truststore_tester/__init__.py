"""Check TLS servers and certificate files against a PKCS#12/JKS truststore."""

__version__ = "0.1.0"
