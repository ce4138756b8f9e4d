"""Tests for governor.delivery.allowlist."""

import pytest

from governor.config import AllowedProcess
from governor.delivery import ProcessRequest, authorize, parse_command_line
from governor.errors import ForbiddenProcessError

BUILD_LINE = "dotnet build src/App --configuration Release --nologo"
RUN_LINE = "dotnet src/App/bin/Release/net8.0/App.dll"


class TestCanonicalShapes:
    def test_structured_build(self):
        command = authorize(ProcessRequest(AllowedProcess.DOTNET_BUILD, "src/App"))

        assert command.process == AllowedProcess.DOTNET_BUILD
        assert command.argv == (
            "dotnet",
            "build",
            "src/App",
            "--configuration",
            "Release",
            "--nologo",
        )
        assert command.command_line == BUILD_LINE

    def test_build_line_matches_structured(self):
        assert authorize(BUILD_LINE) == authorize(
            ProcessRequest(AllowedProcess.DOTNET_BUILD, "src/App")
        )

    def test_process_given_by_name(self):
        command = authorize(ProcessRequest("DotnetBuild", "src/App"))
        assert command.process == AllowedProcess.DOTNET_BUILD

    def test_structured_run(self):
        command = authorize(
            ProcessRequest(
                AllowedProcess.DOTNET_RUN,
                "src/App",
                executable_path="src/App/bin/Release/net8.0/App.dll",
            )
        )
        assert command.argv == ("dotnet", "src/App/bin/Release/net8.0/App.dll")

    def test_run_line(self):
        command = authorize(RUN_LINE)
        assert command.process == AllowedProcess.DOTNET_RUN
        assert command.command_line == RUN_LINE

    def test_parse_run_line_derives_project(self):
        request = parse_command_line(RUN_LINE)
        assert request.project_path == "src/App"
        assert request.executable_path == "src/App/bin/Release/net8.0/App.dll"

    def test_configured_dotnet_executable(self):
        command = authorize(BUILD_LINE, dotnet_executable="/opt/dotnet/dotnet")
        assert command.argv[0] == "/opt/dotnet/dotnet"
        assert command.argv[1:] == ("build", "src/App", "--configuration", "Release", "--nologo")


class TestRejectedCommandLines:
    @pytest.mark.parametrize(
        "line",
        [
            "dotnet build && rm -rf /",
            "dotnet build src/App; rm -rf /",
            "dotnet build src/App --configuration Release --nologo | tee log",
            "dotnet build $(whoami) --configuration Release --nologo",
            "dotnet build `id` --configuration Release --nologo",
            "dotnet build src/App --configuration Release --nologo > out.txt",
            'dotnet build "src/App" --configuration Release --nologo',
            "dotnet build src\\App --configuration Release --nologo",
            "dotnet build src/* --configuration Release --nologo",
            "dotnet build src/App --configuration Release --nologo\nrm -rf /",
            "dotnet build src/App\x00 --configuration Release --nologo",
            "dotnet build\tsrc/App --configuration Release --nologo",
            "dotnet src/App/bin/Release/App.dll\x0b",
        ],
    )
    def test_shell_metacharacters(self, line):
        with pytest.raises(ForbiddenProcessError, match="Forbidden character"):
            authorize(line)

    @pytest.mark.parametrize(
        "line",
        [
            "dotnet /tmp/bin/evil.dll",
            "dotnet build / --configuration Release --nologo",
            "dotnet build /opt/App --configuration Release --nologo",
            "dotnet build ~/App --configuration Release --nologo",
            "dotnet ~/App/bin/App.dll",
            "dotnet build C:/App --configuration Release --nologo",
            "dotnet C:/App/bin/App.dll",
            "dotnet //server/share/bin/App.dll",
        ],
    )
    def test_paths_outside_repository(self, line):
        with pytest.raises(ForbiddenProcessError, match="relative to the repository root"):
            authorize(line)

    @pytest.mark.parametrize(
        "line",
        [
            "dotnet build src/App",
            "dotnet build src/App --configuration Debug --nologo",
            "dotnet build src/App --configuration Release --nologo -v diag",
            "dotnet build --nologo src/App --configuration Release",
            "dotnet test src/App",
            "dotnet run --project src/App",
            "dotnet",
            "sudo dotnet build src/App --configuration Release --nologo",
            "/usr/bin/dotnet build src/App --configuration Release --nologo",
            "rm -rf /",
            "",
        ],
    )
    def test_non_canonical_shapes(self, line):
        with pytest.raises(ForbiddenProcessError):
            authorize(line)

    def test_option_as_project_path(self):
        with pytest.raises(ForbiddenProcessError, match="must not look like an option"):
            authorize("dotnet build --help --configuration Release --nologo")

    def test_run_outside_bin(self):
        with pytest.raises(ForbiddenProcessError, match="bin/"):
            authorize("dotnet src/App/App.dll")


class TestRejectedRequests:
    def test_unknown_process(self):
        with pytest.raises(ForbiddenProcessError, match="Process not allowed"):
            authorize(ProcessRequest("DotnetTest", "src/App"))

    def test_extra_args(self):
        with pytest.raises(ForbiddenProcessError, match="Extra arguments"):
            authorize(
                ProcessRequest(AllowedProcess.DOTNET_BUILD, "src/App", extra_args=("-v", "diag"))
            )

    @pytest.mark.parametrize(
        "path",
        [
            "",
            "   ",
            "src/App&&rm",
            "src/../../etc",
            "-x",
            "src/My App",
            "/",
            "/opt/App",
            "~",
            "~/App",
            "C:",
            "c:/App",
            "//server/share",
            "src/App\x00",
            "src/\tApp",
            "src/App\x0b",
            "src/App\x7f",
        ],
    )
    def test_bad_project_path(self, path):
        with pytest.raises(ForbiddenProcessError):
            authorize(ProcessRequest(AllowedProcess.DOTNET_BUILD, path))

    @pytest.mark.parametrize(
        "project, executable",
        [
            ("/opt", "/opt/bin/x.dll"),
            ("src/App", "/src/App/bin/App.dll"),
            ("~/App", "~/App/bin/App.dll"),
        ],
    )
    def test_run_outside_repository(self, project, executable):
        request = ProcessRequest(AllowedProcess.DOTNET_RUN, project, executable_path=executable)
        with pytest.raises(ForbiddenProcessError, match="relative to the repository root"):
            authorize(request)

    def test_control_character_never_reaches_subprocess(self):
        with pytest.raises(ForbiddenProcessError, match="Forbidden character"):
            authorize(
                ProcessRequest(
                    AllowedProcess.DOTNET_RUN,
                    "src/App",
                    executable_path="src/App/bin/App\x00.dll",
                )
            )

    def test_build_with_executable(self):
        with pytest.raises(ForbiddenProcessError):
            authorize(
                ProcessRequest(AllowedProcess.DOTNET_BUILD, "src/App", executable_path="x.dll")
            )

    def test_run_without_executable(self):
        with pytest.raises(ForbiddenProcessError, match="executable_path"):
            authorize(ProcessRequest(AllowedProcess.DOTNET_RUN, "src/App"))

    @pytest.mark.parametrize(
        "executable",
        [
            "src/App/bin/App.exe",
            "src/App/bin/Release/App.sh",
            "src/Other/bin/Release/Other.dll",
            "src/App/obj/App.dll",
            "src/App/bin/../../../evil.dll",
        ],
    )
    def test_run_executable_must_be_build_output(self, executable):
        with pytest.raises(ForbiddenProcessError):
            authorize(ProcessRequest(AllowedProcess.DOTNET_RUN, "src/App", executable_path=executable))

    def test_error_carries_request(self):
        request = ProcessRequest("Bash", "src/App")
        with pytest.raises(ForbiddenProcessError) as exc_info:
            authorize(request)
        assert exc_info.value.requested is request
