import os

# Suppress CUDA/XLA C++ warnings (GPU interconnect, NUMA, cuDNN factories)
# Must be set before JAX import; does not affect JAX compilation time messages
os.environ.setdefault('TF_CPP_MIN_LOG_LEVEL', '2')

import logging
logger = logging.getLogger('nllchain')


def clean_config(chain_config):
    """
    Cleans the config dict and sets defaults.
    All config keys use lowercase with underscores.
    """
    chain_config = dict(chain_config)

    chain_config.setdefault('backend', 'auto')
    chain_config.setdefault('platform', None)
    chain_config.setdefault('n_lanes', None)
    chain_config.setdefault('group_size', None)
    chain_config.setdefault('rng_seed', 42)
    chain_config.setdefault('num_steps', 1000)
    chain_config.setdefault('chunk_size', 100)
    chain_config.setdefault('debug_mode', False)
    chain_config.setdefault('use_double', True)
    chain_config.setdefault('gpu_preallocation', False)
    chain_config.setdefault('burnin_fraction', 0.1)
    chain_config.setdefault('confidence', 0.9)

    if type(chain_config["gpu_preallocation"]) != bool:
        logger.warning("'gpu_preallocation' must be 'True' or 'False'")

    if 'XLA_PYTHON_CLIENT_PREALLOCATE' not in os.environ:
        if chain_config["gpu_preallocation"]:
            logger.info("Pre-allocating GPU memory.")
            os.environ['XLA_PYTHON_CLIENT_PREALLOCATE'] = 'true'
        else:
            os.environ['XLA_PYTHON_CLIENT_PREALLOCATE'] = 'false'

    return chain_config
