from .rhvae_model import RHVAE, ModelFactory

__all__ = ['RHVAE', 'ModelFactory']
