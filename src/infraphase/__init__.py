"""infraphase: phased, parallel provisioning of cloud resources."""

__version__ = "0.1.0"
