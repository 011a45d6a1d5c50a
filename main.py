"""Entry point launcher - runs pylocal.cli as a module"""
import runpy

if __name__ == "__main__":
    runpy.run_module("pylocal.cli", run_name="__main__")
