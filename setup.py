from setuptools import setup, find_packages

setup(
        name='jfnkflows',
        version='0.1.0',
        packages=find_packages(include=['jfnk', 'jfnk.*']),
        description='Jacobian-Free Newton-Krylov solver with Householder Adaptive Simpler GMRES',
        license='MIT',
        python_requires='>=3.10',
        install_requires=['numpy', 'pyyaml'],
        extras_require={
            'test': ['pytest', 'scipy'],
            'examples': ['scipy', 'matplotlib'],
        },
)
