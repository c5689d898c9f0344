from gradleflow.infra.flow import GraphBuilder, TaskGraph, TaskKind
from gradleflow.infra.flow.models import ArchiveConfig, CopyConfig, DeleteConfig, ExecConfig


def build_sample_graph() -> TaskGraph:
    """A typical Java build: clean, compile, test, jar, assemble and a distribution zip."""
    return (GraphBuilder()
        .add_task("clean", TaskKind.DELETE, DeleteConfig(delete=("build",)),
                  group="build", description="Deletes the build directory")
        .add_task("compileJava", TaskKind.JAVA_COMPILE, depends_on=["clean"],
                  group="build", description="Compiles main Java source")
        .add_task("processResources", TaskKind.PROCESS_RESOURCES,
                  CopyConfig(from_paths=("src/main/resources",), into="build/resources/main"),
                  depends_on=["clean"], group="build", description="Processes main resources")
        .add_task("classes", depends_on=["compileJava", "processResources"],
                  group="build", description="Assembles main classes")
        .add_task("compileTestJava", TaskKind.JAVA_COMPILE, depends_on=["classes"],
                  group="build", description="Compiles test Java source")
        .add_task("processTestResources", TaskKind.PROCESS_RESOURCES,
                  CopyConfig(from_paths=("src/test/resources",), into="build/resources/test"),
                  depends_on=["classes"], group="build", description="Processes test resources")
        .add_task("testClasses", depends_on=["compileTestJava", "processTestResources"],
                  group="build", description="Assembles test classes")
        .add_task("test", TaskKind.TEST, depends_on=["testClasses"],
                  group="verification", description="Runs the unit tests")
        .add_task("jar", TaskKind.JAR, depends_on=["classes"],
                  group="build", description="Assembles a jar archive")
        .add_task("assemble", depends_on=["jar"],
                  group="build", description="Assembles the outputs of this project")
        .add_task("check", depends_on=["test"],
                  group="verification", description="Runs all checks")
        .add_task("build", depends_on=["assemble", "check"],
                  group="build", description="Assembles and tests this project")
        .add_task("runScript", TaskKind.EXEC, ExecConfig(command_line=("sh", "scripts/run.sh")),
                  depends_on=["processResources"], group="application", description="Runs a shell script")
        .add_task("copyAssets", TaskKind.COPY, CopyConfig(from_paths=("src/main/assets",), into="build/assets"),
                  depends_on=["jar"], group="build", description="Copies static assets")
        .add_task("packageDist", TaskKind.ZIP, ArchiveConfig(from_paths=("build/libs", "build/assets"),
                                                              archive_file_name="dist.zip"),
                  depends_on=["copyAssets", "assemble"], group="distribution",
                  description="Creates distribution archive")
        .build())
