from setuptools import find_packages, setup

setup(
    name='sshmanager',
    version='0.1.0',
    description='Manage SSH connection profiles stored in the OpenSSH client config',
    packages=find_packages(include=['sshmanager', 'sshmanager.*']),
    python_requires='>=3.8',
    install_requires=[
        'paramiko',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'sshmanager=sshmanager.main:main',
        ],
    },
)
